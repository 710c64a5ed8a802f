"""Explicit job kind registry mapping kinds and aliases to builder factories."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Mapping

from cryoprocess.domain import ActingUser, ProjectContext, UnknownJobKindError

from .auto_refine import AutoRefineBuilder
from .base import JobCommandBuilder
from .join_star import JoinStarBuilder
from .local_resolution import LocalResolutionBuilder
from .mask_create import MaskCreateBuilder
from .postprocess import PostProcessBuilder

logger = logging.getLogger(__name__)

BuilderFactory = Callable[[Mapping[str, Any], ProjectContext, ActingUser | None], JobCommandBuilder]


@dataclass(frozen=True)
class JobKindDefinition:
    """Registration record for one job kind.

    Attributes:
        kind: Canonical kind name.
        stage_name: Pipeline stage folder name used for job outputs.
        aliases: Alternative kind names accepted from callers.
        factory: Callable constructing the builder for one job instance.
    """

    kind: str
    stage_name: str
    aliases: tuple[str, ...]
    factory: BuilderFactory


def _registry_normalize_kind(kind: str) -> str:
    return kind.strip().lower()


class JobBuilderRegistry:
    """Lookup table from job kind names to builder definitions."""

    def __init__(self):
        self._definitions_by_name: dict[str, JobKindDefinition] = {}
        self._canonical_definitions: dict[str, JobKindDefinition] = {}

    def registry_register(self, definition: JobKindDefinition) -> None:
        """Register one job kind with its aliases.

        Args:
            definition: Kind registration record.

        Returns:
            None: Registration mutates the registry.

        Raises:
            ValueError: Raised when the kind or an alias is blank or already registered.
        """

        if definition is None:
            raise ValueError("definition must not be None")

        names = [_registry_normalize_kind(name) for name in (definition.kind, *definition.aliases)]
        for name in names:
            if not name:
                raise ValueError("kind and aliases must not be blank")
            if name in self._definitions_by_name:
                raise ValueError(f"job kind already registered: {name}")

        for name in names:
            self._definitions_by_name[name] = definition
        self._canonical_definitions[names[0]] = definition

    def registry_resolve(self, kind: str) -> JobKindDefinition:
        """Resolve a kind or alias to its definition.

        Args:
            kind: Kind name as supplied by the caller, matched case-insensitively.

        Returns:
            JobKindDefinition: Matching definition.

        Raises:
            UnknownJobKindError: Raised when no kind or alias matches.
        """

        definition = self._definitions_by_name.get(_registry_normalize_kind(kind or ""))
        if definition is None:
            raise UnknownJobKindError(kind)
        return definition

    def registry_supported_kinds(self) -> tuple[str, ...]:
        """Return canonical kind names in registration order."""

        return tuple(self._canonical_definitions)

    def registry_definitions(self) -> tuple[JobKindDefinition, ...]:
        """Return canonical definitions in registration order."""

        return tuple(self._canonical_definitions.values())

    def registry_create_builder(
        self,
        kind: str,
        parameters: Mapping[str, Any],
        project: ProjectContext,
        acting_user: ActingUser | None = None,
    ) -> JobCommandBuilder:
        """Construct the builder for one job instance.

        Args:
            kind: Kind name or alias.
            parameters: Raw parameter bag.
            project: Project scope.
            acting_user: User on whose behalf the job is built.

        Returns:
            JobCommandBuilder: Fresh, not yet validated builder.

        Raises:
            UnknownJobKindError: Raised when no kind or alias matches.
        """

        definition = self.registry_resolve(kind)
        logger.debug("resolved job kind %r to %s", kind, definition.kind)
        return definition.factory(parameters, project, acting_user)


def _registry_definition_for(builder_class: type[JobCommandBuilder], aliases: tuple[str, ...]) -> JobKindDefinition:
    return JobKindDefinition(
        kind=builder_class.kind,
        stage_name=builder_class.stage_name,
        aliases=aliases,
        factory=builder_class,
    )


def builders_create_default_registry() -> JobBuilderRegistry:
    """Create a registry holding every supported job kind.

    Returns:
        JobBuilderRegistry: Registry with the built-in builders.

    Raises:
        ValueError: Raised when built-in registrations collide.
    """

    registry = JobBuilderRegistry()
    registry.registry_register(_registry_definition_for(JoinStarBuilder, ("joinstar",)))
    registry.registry_register(_registry_definition_for(MaskCreateBuilder, ("maskcreate",)))
    registry.registry_register(_registry_definition_for(LocalResolutionBuilder, ("localres",)))
    registry.registry_register(_registry_definition_for(PostProcessBuilder, ("post_process",)))
    registry.registry_register(_registry_definition_for(AutoRefineBuilder, ("autorefine", "refine3d")))
    return registry
