"""BG3 ``Version64`` values.

The game packs a four part version into one 64-bit integer:

    bits 55-63  major     (9 bits)
    bits 47-54  minor     (8 bits)
    bits 31-46  revision  (16 bits)
    bits  0-30  build     (31 bits)

Metadata documents write the value as a signed int64 string, so large
majors show up negative and are masked back to 64 bits on decode.
"""

from __future__ import annotations

from dataclasses import dataclass

_MASK64 = (1 << 64) - 1

_MAJOR_SHIFT, _MAJOR_BITS = 55, 9
_MINOR_SHIFT, _MINOR_BITS = 47, 8
_REVISION_SHIFT, _REVISION_BITS = 31, 16
_BUILD_BITS = 31


def _check(name: str, value: int, bits: int) -> None:
    if not 0 <= value < (1 << bits):
        raise ValueError(f"{name} {value} out of range (0..{(1 << bits) - 1})")


@dataclass(frozen=True, order=True, slots=True)
class Version64:
    # field order matches bit significance, so dataclass ordering equals packed ordering
    major: int = 0
    minor: int = 0
    revision: int = 0
    build: int = 0

    def __post_init__(self) -> None:
        _check("major", self.major, _MAJOR_BITS)
        _check("minor", self.minor, _MINOR_BITS)
        _check("revision", self.revision, _REVISION_BITS)
        _check("build", self.build, _BUILD_BITS)

    @property
    def packed(self) -> int:
        return (
            (self.major << _MAJOR_SHIFT)
            | (self.minor << _MINOR_SHIFT)
            | (self.revision << _REVISION_SHIFT)
            | self.build
        )

    def __int__(self) -> int:
        return self.packed

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.revision}.{self.build}"

    @classmethod
    def from_int(cls, value: int) -> Version64:
        value &= _MASK64
        return cls(
            major=(value >> _MAJOR_SHIFT) & ((1 << _MAJOR_BITS) - 1),
            minor=(value >> _MINOR_SHIFT) & ((1 << _MINOR_BITS) - 1),
            revision=(value >> _REVISION_SHIFT) & ((1 << _REVISION_BITS) - 1),
            build=value & ((1 << _BUILD_BITS) - 1),
        )

    @classmethod
    def from_dotted(cls, text: str) -> Version64:
        """Parse ``"1.2.3.4"``. Missing trailing parts are 0."""
        parts = text.strip().split(".")
        if not 1 <= len(parts) <= 4 or not all(p.strip().isdigit() for p in parts):
            raise ValueError(f"Invalid version string: {text!r}")
        return cls(*(int(p) for p in parts))

    @classmethod
    def parse(cls, text: str) -> Version64:
        """Accept either a dotted version or a raw (possibly signed) int64 string."""
        text = text.strip()
        if "." in text:
            return cls.from_dotted(text)
        try:
            return cls.from_int(int(text))
        except ValueError:
            raise ValueError(f"Invalid version string: {text!r}") from None


DEFAULT_VERSION = Version64(major=1)
DEFAULT_VERSION64 = DEFAULT_VERSION.packed  # 36028797018963968


def encode(major: int, minor: int = 0, revision: int = 0, build: int = 0) -> int:
    return Version64(major, minor, revision, build).packed


def decode(value: int) -> Version64:
    return Version64.from_int(value)


def parse_version64(text: str | None, default: int = DEFAULT_VERSION64) -> int:
    """Packed value for *text*, or *default* when it is empty or unparseable."""
    if not text:
        return default
    try:
        return Version64.parse(text).packed
    except ValueError:
        return default
