"""
DNS naming for the sandbox.

All environments share one hosted zone. Each environment gets its own
subdomain built from the same prefix used for stack names:

  <prefix>.<root>         e.g. staging.ebbo.dev, preview-17.ebbo.dev
  <app>.<prefix>.<root>   e.g. vault.staging.ebbo.dev
"""
from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, field_validator

from .environment import Environment, InvalidNameError, context_str, dns_label

DEFAULT_ROOT_DOMAIN = "ebbo.dev"
DEFAULT_HOSTED_ZONE_ID = "Z02287733RP9AY57D3IRQ"

_MAX_LABEL_LENGTH = 63


class DomainConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_domain: str
    hosted_zone_id: str

    @field_validator("root_domain")
    @classmethod
    def _root_domain_not_empty(cls, value: str) -> str:
        value = value.strip().strip(".").lower()
        if not value:
            raise ValueError("root_domain must not be empty")
        return value

    def environment_domain(self, env: Environment) -> str:
        # env.prefix is already DNS-safe and shorter than one label
        return f"{env.prefix}.{self.root_domain}"

    def app_domain(self, app_name: str, env: Environment) -> str:
        label = dns_label(app_name or "")[:_MAX_LABEL_LENGTH].strip("-")
        if not label:
            raise InvalidNameError(f"app name {app_name!r} is not a usable DNS label")
        return f"{label}.{self.environment_domain(env)}"


def default_domain_config() -> DomainConfig:
    return DomainConfig(root_domain=DEFAULT_ROOT_DOMAIN, hosted_zone_id=DEFAULT_HOSTED_ZONE_ID)


def load_domain_config(context: Mapping[str, Any]) -> DomainConfig:
    """Domain config from CDK context (rootDomain, hostedZoneId), else defaults."""
    return DomainConfig(
        root_domain=context_str(context, "rootDomain") or DEFAULT_ROOT_DOMAIN,
        hosted_zone_id=context_str(context, "hostedZoneId") or DEFAULT_HOSTED_ZONE_ID,
    )
