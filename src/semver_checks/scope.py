"""Which packages of a project take part in a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from semver_checks.exceptions import ConfigurationError
from semver_checks.manifest import Package, ProjectMetadata
from semver_checks.status import Reporter


class ScopeSelection(StrEnum):
    PACKAGES = "packages"
    WORKSPACE = "workspace"
    DEFAULT_MEMBERS = "default-members"


@dataclass(frozen=True)
class ProjectScope:
    selection: ScopeSelection = ScopeSelection.DEFAULT_MEMBERS
    packages: tuple[str, ...] = ()
    excluded: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "packages", tuple(self.packages))
        object.__setattr__(self, "excluded", tuple(self.excluded))
        if self.selection is ScopeSelection.PACKAGES and not self.packages:
            raise ConfigurationError("package selection requires at least one package name")

    @classmethod
    def workspace(cls, *, excluded: tuple[str, ...] | list[str] = ()) -> ProjectScope:
        return cls(ScopeSelection.WORKSPACE, excluded=tuple(excluded))

    @classmethod
    def only(
        cls,
        packages: tuple[str, ...] | list[str],
        *,
        excluded: tuple[str, ...] | list[str] = (),
    ) -> ProjectScope:
        return cls(ScopeSelection.PACKAGES, packages=tuple(packages), excluded=tuple(excluded))

    @property
    def is_implied(self) -> bool:
        """Packages in scope were not named by the user."""
        return self.selection is ScopeSelection.WORKSPACE

    def selected_packages(self, meta: ProjectMetadata) -> list[Package]:
        members = meta.workspace_members
        if self.selection is ScopeSelection.DEFAULT_MEMBERS:
            # No explicit default in the project: every member is a default member.
            base_ids = {meta.root} if meta.root is not None else set(members)
        elif self.selection is ScopeSelection.WORKSPACE:
            base_ids = set(members)
        else:
            # Exact names only, and only against workspace members.
            base_ids = {
                package.id
                for package in meta.packages
                if package.id in members and package.name in self.packages
            }
        return [
            package
            for package in meta.packages
            if package.id in base_ids and package.name not in self.excluded
        ]


def resolve_scope(meta: ProjectMetadata, scope: ProjectScope, reporter: Reporter) -> list[Package]:
    """Selected packages, minus non-publishable ones when the scope is implied."""
    resolved: list[Package] = []
    for package in scope.selected_packages(meta):
        if scope.is_implied and not package.publish:
            reporter.verbose("Skipping", f"{package.name} {package.display_version()} (current)")
            continue
        resolved.append(package)
    return resolved
