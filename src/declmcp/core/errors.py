"""Error types raised while compiling declarations into registrations."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any


class DeclarationError(Exception):
    """Base class for every fatal error raised by declmcp."""

    def __init__(
        self,
        message: str,
        *,
        file_path: Path | str | None = None,
        declared_name: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.message = message
        self.file_path = Path(file_path) if file_path is not None else None
        self.declared_name = declared_name
        self.hint = hint
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.file_path is not None:
            parts.append(f"{self.file_path}: ")
        if self.declared_name:
            parts.append(f"[{self.declared_name}] ")
        parts.append(self.message)
        if self.hint:
            parts.append(f"\n  Fix: {self.hint}")
        return "".join(parts)


class ParseError(DeclarationError):
    """The declaration file is unusable; nothing from it is registered."""


class SchemaGenerationError(DeclarationError):
    """A type expression has no schema translation rule.

    Raised inside the translator only; it is converted into a permissive
    schema node plus a :class:`SchemaGenerationWarning` before it reaches
    callers.
    """


class SchemaGenerationWarning(UserWarning):
    """A property was given an accept-anything schema."""


@dataclass(frozen=True)
class BindingIssue:
    """One declared item without a usable implementation member."""

    kind: str
    declared_name: str
    member_name: str
    expected_shape: str
    reason: str

    def describe(self) -> str:
        return (
            f"{self.kind} '{self.declared_name}': {self.reason}\n"
            f"    add a method named `{self.member_name}` to the implementation: "
            f"{self.expected_shape}"
        )


class BindingError(DeclarationError):
    """One or more declared items lack a valid implementation member.

    Every gap found across the whole file is listed, not just the first.
    """

    def __init__(
        self,
        issues: list[BindingIssue] | tuple[BindingIssue, ...],
        *,
        file_path: Path | str | None = None,
        implementation: str | None = None,
    ) -> None:
        self.issues = tuple(issues)
        self.implementation = implementation
        target = f"'{implementation}'" if implementation else "the implementation"
        lines = [f"{len(self.issues)} declared item(s) are not implemented by {target}:"]
        lines.extend(f"  - {issue.describe()}" for issue in self.issues)
        super().__init__(
            "\n".join(lines),
            file_path=file_path,
            hint="implement every member listed above, then reload",
        )

    @property
    def missing_members(self) -> list[str]:
        return [issue.member_name for issue in self.issues]


class ArgumentValidationError(DeclarationError):
    """Arguments passed to an invocation do not satisfy the declared schema."""

    def __init__(self, kind: str, name: str, errors: list[dict[str, Any]]) -> None:
        self.kind = kind
        self.errors = errors
        lines = [f"Invalid arguments for {kind} '{name}':"]
        for error in errors:
            location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
            lines.append(f"  {location}: {error.get('msg', 'invalid value')}")
        super().__init__("\n".join(lines), declared_name=name)

    @property
    def fields(self) -> list[str]:
        """Top-level field names that failed validation."""
        names = []
        for error in self.errors:
            loc = error.get("loc", ())
            if loc and str(loc[0]) not in names:
                names.append(str(loc[0]))
        return names
