"""
Core Stack
==========
Resources shared by every other stack in an environment.

The hosted zone for the root domain already exists (it is shared by all
environments), so it is imported by ID rather than created here.
"""
import aws_cdk as cdk
from aws_cdk import aws_route53 as route53
from constructs import Construct

from .domain import DomainConfig, default_domain_config
from .environment import Environment


def import_hosted_zone(scope: Construct, domain_config: DomainConfig) -> route53.IHostedZone:
    return route53.HostedZone.from_hosted_zone_attributes(
        scope, "RootHostedZone",
        hosted_zone_id=domain_config.hosted_zone_id,
        zone_name=domain_config.root_domain,
    )


class CoreStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        environment: Environment,
        domain_config: DomainConfig | None = None,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        domain_config = domain_config or default_domain_config()
        self.hosted_zone = import_hosted_zone(self, domain_config)

        cdk.CfnOutput(self, "Username", value=environment.username)
        cdk.CfnOutput(self, "HostedZoneId", value=self.hosted_zone.hosted_zone_id)
        cdk.CfnOutput(
            self, "EnvironmentDomain",
            value=domain_config.environment_domain(environment),
        )
