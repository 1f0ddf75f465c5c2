"""Vaultwarden stack settings, overridable through VAULTWARDEN_* environment variables."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VaultwardenConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VAULTWARDEN_", case_sensitive=False)

    # Image
    base_image_name: str = "vaultwarden/server"
    base_version: str = "latest"
    domain_name: str = ""  # empty → vault.<environment domain>

    # VPC
    vpc_cidr: str = "20.0.0.0/24"
    max_azs: int = Field(default=2, gt=0)

    # ECS
    cluster_name: str = "vaultwarden-cluster"
    desired_count: int = Field(default=1, gt=0)
    cpu: int = Field(default=256, gt=0)           # 0.25 vCPU
    memory_mib: int = Field(default=512, gt=0)

    # EFS
    file_system_name: str = "vaultwarden-fs"
    enable_automatic_backups: bool = True
    lifecycle_policy_days: int = 14
    # 0 = files stay in Infrequent Access; EFS only supports moving back after 1 access
    out_of_infrequent_access_hits: int = Field(default=1, ge=0, le=1)


def mirror_commands(upstream: str, registry: str, repository_name: str, version: str) -> str:
    """Shell one-liner that copies upstream:version into the private registry."""
    target = f"{registry}/{repository_name}:{version}"
    return " && ".join([
        f"docker pull {upstream}:{version}",
        f"docker tag {upstream}:{version} {target}",
        f"aws ecr get-login-password | docker login --username AWS --password-stdin {registry}",
        f"docker push {target}",
    ])
