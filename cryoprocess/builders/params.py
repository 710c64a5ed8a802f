"""Lenient typed readers over the untyped job parameter bag.

Every reader accepts one key or an ordered list of fallback keys and never
raises for missing or null values.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping, Sequence

_DEFAULT_MPI_PROCS = 1
_DEFAULT_THREADS = 1
_GPU_ID_LIST_PATTERN = re.compile(r"^[\d,]+$")
_WHITESPACE_PATTERN = re.compile(r"\s")


def _param_normalize_names(names: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(names, str):
        return (names,)
    return tuple(names)


def _param_is_truthy_text(value: str) -> bool:
    return value.strip().lower() in ("yes", "true")


def param_get(bag: Mapping[str, Any] | None, names: str | Sequence[str], default: Any = None) -> Any:
    """Return the first present value among fallback keys.

    A value counts as present when it is neither None nor an empty string.

    Args:
        bag: Untyped parameter mapping.
        names: One key or ordered fallback keys.
        default: Value returned when no key holds a present value.

    Returns:
        Any: First present value or the default.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if not bag:
        return default

    for name in _param_normalize_names(names):
        value = bag.get(name)
        if value is None or value == "":
            continue
        return value
    return default


def param_get_bool(bag: Mapping[str, Any] | None, names: str | Sequence[str], default: bool = False) -> bool:
    """Return a boolean reading of the first present value.

    Strings `yes`/`true` (any case) read as True and every other string as
    False. Non-string values use their truthiness.

    Args:
        bag: Untyped parameter mapping.
        names: One key or ordered fallback keys.
        default: Value returned when no key holds a present value.

    Returns:
        bool: Boolean reading of the parameter.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    value = param_get(bag, names, None)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _param_is_truthy_text(value)
    return bool(value)


def param_get_int(bag: Mapping[str, Any] | None, names: str | Sequence[str], default: int = 0) -> int:
    """Return an integer reading of the first present value.

    Args:
        bag: Untyped parameter mapping.
        names: One key or ordered fallback keys.
        default: Value returned when the parameter is absent or unparsable.

    Returns:
        int: Parsed integer or the default.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    value = param_get(bag, names, None)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return default


def param_get_float(bag: Mapping[str, Any] | None, names: str | Sequence[str], default: float = 0.0) -> float:
    """Return a float reading of the first present value.

    Args:
        bag: Untyped parameter mapping.
        names: One key or ordered fallback keys.
        default: Value returned when the parameter is absent or unparsable.

    Returns:
        float: Parsed float or the default.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    value = param_get(bag, names, None)
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed_value = float(str(value).strip())
    except ValueError:
        return default
    return default if math.isnan(parsed_value) else parsed_value


def param_get_mpi_procs(bag: Mapping[str, Any] | None) -> int:
    """Return the requested MPI process count, at least one."""

    return max(1, param_get_int(bag, ("mpiProcs", "runningmpi", "numberOfMpiProcs"), _DEFAULT_MPI_PROCS))


def param_get_threads(bag: Mapping[str, Any] | None) -> int:
    """Return the requested thread count, at least one."""

    return max(1, param_get_int(bag, ("numberOfThreads", "threads"), _DEFAULT_THREADS))


def param_is_gpu_enabled(bag: Mapping[str, Any] | None) -> bool:
    """Return whether GPU acceleration is requested.

    The explicit acceleration toggle wins. Without it, a device list made of
    digits and commas, or a literal `yes`, enables the GPU.

    Args:
        bag: Untyped parameter mapping.

    Returns:
        bool: True when the job asks for GPU execution.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    acceleration = param_get(bag, ("gpuAcceleration", "GpuAcceleration"), None)
    if isinstance(acceleration, bool):
        return acceleration
    if isinstance(acceleration, str):
        return _param_is_truthy_text(acceleration)

    device_value = param_get(bag, ("gpuToUse", "useGPU"), None)
    if device_value is None or device_value == "No":
        return False
    device_text = str(device_value)
    return bool(_GPU_ID_LIST_PATTERN.match(device_text)) or device_text.lower() == "yes"


def param_get_gpu_ids(bag: Mapping[str, Any] | None) -> str:
    """Return the GPU device list with whitespace removed, `0` by default."""

    gpu_ids = param_get(bag, ("gpuToUse", "useGPU", "gpu"), "0")
    if gpu_ids in ("Yes", "No"):
        gpu_ids = "0"
    return _WHITESPACE_PATTERN.sub("", str(gpu_ids))
