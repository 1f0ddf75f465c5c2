"""
Deployment Environment
======================
Resolves who/what/where a deployment is for, and derives every name from it.

Several people and every open pull request deploy into the same AWS account,
so each stack, Lambda, cluster and DNS record must carry a prefix that is
unique to its deployment:

  preview build (prNumber set)   → preview-<pr>-<base>
  development stage              → development-<username>-<base>
  any other stage (staging, ...) → <stage>-<base>

The PR rule is checked first. A PR build whose stage is also "development"
is still named after the PR, so it can never overwrite a developer's stack.

Prefix segments are rendered DNS-safe. A segment that loses characters in
the process (john.doe, José) gets a short hash of the raw value appended, so
two inputs never share a prefix. Prefixes longer than MAX_PREFIX_LENGTH are
cut and hashed the same way, which keeps Lambda function names under 64
characters and DNS labels under 63.

Usage:
  env = resolve_environment({"environment": "preview", "prNumber": "17"})
  env.stack_name("LambdaStack")   # "preview-17-lambda-stack"
"""
from __future__ import annotations

import hashlib
import logging
import os
import re
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, model_validator

logger = logging.getLogger(__name__)

DEVELOPMENT_STAGE = "development"
PREVIEW_STAGE = "preview"
DEFAULT_USERNAME = "default"
MANAGED_BY = "CDK"

MAX_PREFIX_LENGTH = 40
HASH_LENGTH = 6

# Keys read from the CDK context (cdk deploy -c environment=staging ...)
CONTEXT_KEYS = ("environment", "prNumber", "version", "sha", "username")

IdentityProvider = Callable[[], Optional[str]]

_SEPARATORS = re.compile(r"[_\s]+")
_UPPER_BOUNDARY = re.compile(r"(?<=[^-])(?=[A-Z])")
_NON_LABEL_CHARS = re.compile(r"[^a-z0-9]+")
_BASE_NAME = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


class MissingContextError(Exception):
    """No deployment context at all. Deploying anyway could hit the wrong stage."""


class InvalidNameError(ValueError):
    """A base name, app name or prefix part that would produce a malformed resource name."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def kebab_case(name: str) -> str:
    """FooBar → foo-bar, Core_Stack → core-stack. Kebab-cased input is only lowercased."""
    name = _SEPARATORS.sub("-", name.strip())
    return _UPPER_BOUNDARY.sub("-", name).lower()


def dns_label(value: str) -> str:
    """Lowercase and collapse anything outside [a-z0-9] into single hyphens."""
    return _NON_LABEL_CHARS.sub("-", value.lower()).strip("-")


def short_hash(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def name_segment(value: str) -> str:
    """DNS-safe rendering of one prefix part, hashed when the rendering is lossy."""
    label = dns_label(value)
    if label == value.lower():
        return label
    return f"{label}-{short_hash(value)}" if label else short_hash(value)


def _shorten(prefix: str) -> str:
    if len(prefix) <= MAX_PREFIX_LENGTH:
        return prefix
    head = prefix[:MAX_PREFIX_LENGTH - HASH_LENGTH - 1].rstrip("-")
    return f"{head}-{short_hash(prefix)}"


def check_prefix_parts(name: str, pr_number: str, username: str) -> None:
    """Raise InvalidNameError for values that cannot become part of a name prefix."""
    if not dns_label(name):
        raise InvalidNameError(f"environment name {name!r} has no usable characters")
    if pr_number and not dns_label(pr_number):
        raise InvalidNameError(f"PR number {pr_number!r} has no usable characters")
    if not username.strip():
        raise InvalidNameError("username must not be empty")


def os_identity(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Default identity provider: $USER, then $USERNAME (Windows)."""
    environ = os.environ if environ is None else environ
    for key in ("USER", "USERNAME"):
        value = environ.get(key, "").strip()
        if value:
            return value
    return None


def context_str(context: Mapping[str, Any], key: str) -> str:
    # Values come from cdk.json / -c flags untyped; anything that isn't a
    # non-blank string counts as missing.
    value = context.get(key)
    if not isinstance(value, str):
        if value is not None:
            logger.debug("Ignoring non-string context value", extra={"key": key})
        return ""
    return value.strip()


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

class Environment(BaseModel):
    """
    Resolved deployment identity. Immutable once built.

    name:      stage (development, staging, production, preview, ...)
    pr_number: set only for pull-request builds
    version:   release version or commit SHA, "" when unknown
    username:  acting developer, never empty
    """
    model_config = ConfigDict(frozen=True)

    name: str = DEVELOPMENT_STAGE
    pr_number: str = ""
    version: str = ""
    username: str = DEFAULT_USERNAME

    @model_validator(mode="after")
    def _usable_prefix_parts(self) -> Environment:
        check_prefix_parts(self.name, self.pr_number, self.username)
        return self

    @property
    def is_preview(self) -> bool:
        return self.pr_number != ""

    @property
    def is_development(self) -> bool:
        return self.name == DEVELOPMENT_STAGE

    @property
    def prefix(self) -> str:
        """Naming prefix shared by stacks, resources and DNS names."""
        if self.is_preview:
            prefix = f"{PREVIEW_STAGE}-{name_segment(self.pr_number)}"
        elif self.is_development:
            prefix = f"{DEVELOPMENT_STAGE}-{name_segment(self.username)}"
        else:
            prefix = name_segment(self.name)
        return _shorten(prefix)

    def stack_name(self, base_name: str) -> str:
        return self.resource_name(base_name)

    def resource_name(self, base_name: str) -> str:
        base = kebab_case(base_name or "")
        if not _BASE_NAME.fullmatch(base):
            raise InvalidNameError(f"base name {base_name!r} is not a usable resource name")
        return f"{self.prefix}-{base}"

    def tags(self) -> dict[str, str]:
        """Tags for cost allocation. Applied by the caller, e.g. cdk.Tags.of(app)."""
        tags = {
            "Environment": self.name,
            "ManagedBy": MANAGED_BY,
        }
        if self.is_preview:
            tags["Preview"] = "true"
            tags["PR"] = self.pr_number
        if self.version:
            tags["Version"] = self.version
        return tags


def resolve_environment(
    context: Optional[Mapping[str, Any]],
    identity: IdentityProvider = os_identity,
) -> Environment:
    """
    Build an Environment from a deployment context.

    Missing fields fall back to defaults; a missing context object does not,
    and neither does a stage or PR number with no usable characters.
    """
    if context is None:
        raise MissingContextError(
            "No deployment context available; refusing to guess the target environment"
        )

    name = context_str(context, "environment")
    if not name:
        logger.debug("No environment in context, using %s", DEVELOPMENT_STAGE)
        name = DEVELOPMENT_STAGE

    pr_number = context_str(context, "prNumber")
    version = context_str(context, "version") or context_str(context, "sha")

    username = context_str(context, "username")
    if not username:
        username = (identity() or "").strip() or DEFAULT_USERNAME

    check_prefix_parts(name, pr_number, username)
    env = Environment(name=name, pr_number=pr_number, version=version, username=username)
    logger.info(
        "Resolved deployment environment",
        extra={"environment": env.name, "prefix": env.prefix, "preview": env.is_preview},
    )
    return env
