"""Pydantic models for the persisted oasgraph configuration.

The configuration is serialised as JSON in the user's config directory (see
:mod:`oasgraph.config`):

    :class:`ResolveConfig`, :class:`OutputConfig` and :class:`GlobalConfig`.

The typed OpenAPI object model lives in :mod:`oasgraph.document`, not here.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ResolveConfig(BaseModel):
    """Reference resolution defaults stored in :class:`GlobalConfig`."""

    disable_external_refs: bool = Field(
        default=False, description="Reject $ref pointers into other documents"
    )
    http_timeout: float = Field(
        default=30.0, description="Timeout in seconds for fetching remote documents"
    )

    @field_validator("http_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("http_timeout must be positive")
        return value


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )
    color: bool = Field(default=True, description="Use colour on a terminal")

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("auto", "json", "plain", "rich"):
            raise ValueError(f"unknown output format: {value}")
        return value


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/oasgraph/config.json``.

    Loaded and saved by :func:`~oasgraph.config.load_global_config` and
    :func:`~oasgraph.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by environment variables or CLI
    flags. See :func:`~oasgraph.config.resolve_config` for the full
    precedence chain.
    """

    resolve: ResolveConfig = Field(default_factory=ResolveConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
