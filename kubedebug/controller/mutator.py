"""
Pod template mutation.

Rewrites one container so its original entrypoint runs under a headless dlv
server, and mounts the dlv binary (and optionally a replacement executable)
from the node through hostPath volumes.

apply_debug_template is pure: it never touches its input and returns a new
template. Every step either overwrites a fixed value or updates an entry by
name, so applying it twice yields the same template as applying it once.
"""

import copy
from typing import Any, List, Sequence

from kubernetes import client

from ..core.profile import DebugProfile

DEBUG_AGENT_VOLUME_NAME = "dlv-exe-volume"
REPLACEMENT_EXE_VOLUME_NAME = "debug-exe-volume"

DEBUG_AGENT_MOUNT_PATH = "/data/dlv"
REPLACEMENT_EXE_MOUNT_PATH = "/data/debug-binary"


def _index_by_name(items: Sequence[Any], name: str) -> int:
    for i, item in enumerate(items):
        if item.name == name:
            return i
    return -1


def find_container_index(template: client.V1PodTemplateSpec, name: str) -> int:
    """Position of the named container in the template, or -1."""
    if template.spec is None:
        return -1
    return _index_by_name(template.spec.containers or [], name)


def debug_agent_command(profile: DebugProfile) -> List[str]:
    return [
        DEBUG_AGENT_MOUNT_PATH,
        f"--listen=:{profile.debug_port}",
        "--headless=true",
        "--api-version=2",
        "--log",
        "exec",
    ]


def debug_agent_args(profile: DebugProfile) -> List[str]:
    if profile.replacement_executable_host_path:
        executable = REPLACEMENT_EXE_MOUNT_PATH
    else:
        executable = profile.command_args[0]

    args = [executable]
    if len(profile.command_args) > 1:
        args.append("--")
        args.extend(profile.command_args[1:])
    return args


def _ensure_host_path_volume(
    pod_spec: client.V1PodSpec,
    container: client.V1Container,
    volume_name: str,
    host_path: str,
    mount_path: str,
) -> None:
    volumes = list(pod_spec.volumes or [])
    index = _index_by_name(volumes, volume_name)
    if index == -1:
        volumes.append(
            client.V1Volume(
                name=volume_name,
                host_path=client.V1HostPathVolumeSource(path=host_path),
            )
        )
    elif volumes[index].host_path is not None:
        volumes[index].host_path.path = host_path
    else:
        volumes[index] = client.V1Volume(
            name=volume_name,
            host_path=client.V1HostPathVolumeSource(path=host_path),
        )
    pod_spec.volumes = volumes

    mounts = list(container.volume_mounts or [])
    index = _index_by_name(mounts, volume_name)
    if index == -1:
        mounts.append(client.V1VolumeMount(name=volume_name, mount_path=mount_path))
    else:
        mounts[index].mount_path = mount_path
    container.volume_mounts = mounts


def apply_debug_template(
    template: client.V1PodTemplateSpec, profile: DebugProfile
) -> client.V1PodTemplateSpec:
    """
    Return a copy of ``template`` with the profile's container relaunched under dlv.

    When no container is named ``profile.container_name`` the copy is returned
    unchanged.
    """
    patched = copy.deepcopy(template)
    index = find_container_index(patched, profile.container_name)
    if index == -1:
        return patched

    pod_spec = patched.spec
    container = pod_spec.containers[index]
    container.command = debug_agent_command(profile)
    container.args = debug_agent_args(profile)

    _ensure_host_path_volume(
        pod_spec,
        container,
        DEBUG_AGENT_VOLUME_NAME,
        profile.debug_agent_host_path,
        DEBUG_AGENT_MOUNT_PATH,
    )
    if profile.replacement_executable_host_path:
        _ensure_host_path_volume(
            pod_spec,
            container,
            REPLACEMENT_EXE_VOLUME_NAME,
            profile.replacement_executable_host_path,
            REPLACEMENT_EXE_MOUNT_PATH,
        )

    pod_spec.containers[index] = container
    return patched
