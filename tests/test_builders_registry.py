"""Tests for explicit job kind registration and lookup."""

import pytest

from cryoprocess.builders import (
    AutoRefineBuilder,
    JobBuilderRegistry,
    JobKindDefinition,
    JoinStarBuilder,
    builders_create_default_registry,
)
from cryoprocess.domain import ProjectContext
from cryoprocess.jobs import UnknownJobKindError

_PROJECT = ProjectContext(project_id="p1", project_path="/data/projects/p1")


def test_default_registry_lists_canonical_kinds_in_registration_order() -> None:
    registry = builders_create_default_registry()

    assert registry.registry_supported_kinds() == (
        "join_star",
        "mask_create",
        "local_resolution",
        "postprocess",
        "auto_refine",
    )


def test_registry_resolves_aliases_case_insensitively() -> None:
    """Resolve canonical names and aliases regardless of case and padding.

    Returns:
        None: Assertions validate lookup.

    Raises:
        AssertionError: Raised when lookup differs.
    """

    registry = builders_create_default_registry()

    assert registry.registry_resolve(" JoinStar ").factory is JoinStarBuilder
    assert registry.registry_resolve("Refine3D").factory is AutoRefineBuilder
    assert registry.registry_resolve("AUTO_REFINE").stage_name == "AutoRefine"
    assert isinstance(registry.registry_create_builder("autorefine", {}, _PROJECT), AutoRefineBuilder)


def test_registry_raises_unknown_kind_with_requested_name() -> None:
    """Raise a typed lookup error for unregistered kinds.

    Returns:
        None: Assertions validate error type and attribute.

    Raises:
        AssertionError: Raised when the error differs.
    """

    registry = builders_create_default_registry()

    with pytest.raises(UnknownJobKindError) as error_info:
        registry.registry_resolve("ctf_refine")

    assert error_info.value.kind == "ctf_refine"
    assert isinstance(error_info.value, LookupError)
    with pytest.raises(UnknownJobKindError):
        registry.registry_resolve("")


def test_registry_rejects_duplicate_and_blank_names() -> None:
    registry = JobBuilderRegistry()
    registry.registry_register(JobKindDefinition("join_star", "JoinStar", ("joinstar",), JoinStarBuilder))

    with pytest.raises(ValueError):
        registry.registry_register(JobKindDefinition("other", "Other", ("JoinStar",), JoinStarBuilder))
    with pytest.raises(ValueError):
        registry.registry_register(JobKindDefinition("  ", "Blank", (), JoinStarBuilder))
    assert registry.registry_supported_kinds() == ("join_star",)
