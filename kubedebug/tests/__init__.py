"""
Test suite for the debug controller.

Focus areas:
- Pod template mutation properties
- Profile validation
- Conflict retry and Service ownership
- Reconcile flow against in-memory API fakes
"""
