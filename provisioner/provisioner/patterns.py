"""Version assertion patterns for the build-configuration document.

The build configuration (``JsEnv.Build.cs``) has asserted the expected V8
version in several textual forms over time. Each form is one
``AssignmentPattern`` with a read side (``detect``) and a write side
(``rewrite``). Resolver and patcher walk the same ordered tuples, so a new
historical format only needs a new class here.

Supported forms, in priority order:
- Enum member inside the ``#if UE_4_25_OR_LATER`` ... ``#else`` block
- ``UseV8Version = ... SupportedV8Versions.<Member>;`` anywhere
- ``UseV8Version = "<dotted>";``
- A ``v8_<dotted>`` path fragment (detection only)
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

ARTIFACT_PREFIX = "v8"
ENUM_TYPE = "SupportedV8Versions"
DEPRECATED_MEMBER = "VDeprecated"

# Member names of SupportedV8Versions and the artifact version each selects
ENUM_TO_VERSION: dict[str, str] = {
    DEPRECATED_MEMBER: "8.4.371.19",  # UE 4.24 and below
    "V8_4_371_19": "8.4.371.19",
    "V9_4_146_24": "9.4.146.24",
    "V10_6_194": "10.6.194",
    "V11_8_172": "11.8.172",
}

VERSION_TO_ENUM: dict[str, str] = {
    version: member for member, version in ENUM_TO_VERSION.items() if member != DEPRECATED_MEMBER
}

CONDITIONAL_BLOCK_PATTERN = re.compile(r"#if\s+UE_4_25_OR_LATER([\s\S]*?)#else", re.IGNORECASE)
ENUM_MEMBER_PATTERN = re.compile(rf"{ENUM_TYPE}\.(V\w+)", re.IGNORECASE)
ENUM_ASSIGNMENT_PATTERN = re.compile(
    rf"(UseV8Version\s*=\s*[^.;]*?{ENUM_TYPE}\.)(V\w+)(\s*;)", re.IGNORECASE
)
STRING_ASSIGNMENT_PATTERN = re.compile(r'(UseV8Version\s*=\s*")([\d.]+)("\s*;)', re.IGNORECASE)
PATH_VERSION_PATTERN = re.compile(
    rf"{ARTIFACT_PREFIX}[_\\/](\d+\.\d+\.\d+(?:\.\d+)?)", re.IGNORECASE
)


def version_for_member(member: str) -> str | None:
    """Map an enum member to its version, ignoring the deprecated member.

    Args:
        member: Member name such as ``V10_6_194``.

    Returns:
        Dotted version, or None for unknown or deprecated members.
    """
    if member.lower() == DEPRECATED_MEMBER.lower():
        return None
    for name, version in ENUM_TO_VERSION.items():
        if name.lower() == member.lower():
            return version
    return None


def member_for_version(version: str) -> str | None:
    """Map a dotted version to its enum member, or None if it has none."""
    return VERSION_TO_ENUM.get(version)


def assignment_hint(version: str) -> str:
    """The assignment text a user must add by hand for ``version``."""
    member = member_for_version(version)
    value = f"{ENUM_TYPE}.{member}" if member else f'"{version}"'
    return f"UseV8Version = {value};"


class AssignmentPattern(ABC):
    """One historical form of the version assertion."""

    #: Short identifier used in logs
    name: str = ""
    #: Description used in user-facing messages
    description: str = ""

    @abstractmethod
    def detect(self, content: str) -> str | None:
        """Read the asserted version.

        Args:
            content: Build-configuration text.

        Returns:
            Dotted version, or None if this form is absent.
        """
        ...

    def rewrite(self, content: str, version: str) -> str | None:  # noqa: ARG002
        """Rewrite this form to assert ``version``.

        Default implementation is detection-only.

        Args:
            content: Build-configuration text.
            version: Installed dotted version.

        Returns:
            New text, or None if this form is absent or cannot express
            ``version``.
        """
        return None

    def display_value(self, version: str) -> str:
        """How ``version`` is spelled by this form."""
        return f'"{version}"'


class ConditionalEnumPattern(AssignmentPattern):
    """Enum member inside the ``#if UE_4_25_OR_LATER`` block."""

    name = "conditional_enum"
    description = "conditional-block enum (UE 4.25+)"

    def detect(self, content: str) -> str | None:
        block = CONDITIONAL_BLOCK_PATTERN.search(content)
        if not block:
            return None
        for member in ENUM_MEMBER_PATTERN.finditer(block.group(1)):
            version = version_for_member(member.group(1))
            if version:
                return version
        return None

    def rewrite(self, content: str, version: str) -> str | None:
        member = member_for_version(version)
        if member is None:
            return None
        block = CONDITIONAL_BLOCK_PATTERN.search(content)
        if not block:
            return None
        found = ENUM_MEMBER_PATTERN.search(content, block.start(1), block.end(1))
        if not found:
            return None
        start, end = found.span(1)
        return content[:start] + member + content[end:]

    def display_value(self, version: str) -> str:
        return f"{ENUM_TYPE}.{member_for_version(version)}"


class EnumAssignmentPattern(AssignmentPattern):
    """``UseV8Version = SupportedV8Versions.<Member>;`` anywhere in the file."""

    name = "enum"
    description = "enum assignment"

    def detect(self, content: str) -> str | None:
        for match in ENUM_ASSIGNMENT_PATTERN.finditer(content):
            version = version_for_member(match.group(2))
            if version:
                return version
        return None

    def rewrite(self, content: str, version: str) -> str | None:
        member = member_for_version(version)
        if member is None:
            return None
        matches = list(ENUM_ASSIGNMENT_PATTERN.finditer(content))
        if not matches:
            return None
        # Prefer the live assignment over a deprecated fallback
        target = next((m for m in matches if version_for_member(m.group(2))), matches[0])
        start, end = target.span(2)
        return content[:start] + member + content[end:]

    def display_value(self, version: str) -> str:
        return f"{ENUM_TYPE}.{member_for_version(version)}"


class StringLiteralPattern(AssignmentPattern):
    """``UseV8Version = "<dotted>";`` (older plugin releases)."""

    name = "string"
    description = "string literal assignment"

    def detect(self, content: str) -> str | None:
        match = STRING_ASSIGNMENT_PATTERN.search(content)
        return match.group(2) if match else None

    def rewrite(self, content: str, version: str) -> str | None:
        match = STRING_ASSIGNMENT_PATTERN.search(content)
        if not match:
            return None
        start, end = match.span(2)
        return content[:start] + version + content[end:]


class PathFragmentPattern(AssignmentPattern):
    """Version embedded in a ``v8_<dotted>`` library path."""

    name = "path"
    description = "library path fragment"

    def detect(self, content: str) -> str | None:
        match = PATH_VERSION_PATTERN.search(content)
        return match.group(1) if match else None


DETECTION_PATTERNS: tuple[AssignmentPattern, ...] = (
    ConditionalEnumPattern(),
    EnumAssignmentPattern(),
    StringLiteralPattern(),
    PathFragmentPattern(),
)

PATCH_PATTERNS: tuple[AssignmentPattern, ...] = DETECTION_PATTERNS[:3]
