"""
Lambda Stack
============
One REST API per environment, fronting every Lambda found under services/.

  GET  /                   → inline "hello" function
  ANY  /<route>            → services/<route>/handler.py
  ANY  /<route>/{proxy+}   → same function, sub-paths passed through

The API is published on api.<prefix>.<root> with a wildcard certificate for
the environment domain, so each preview build gets its own hostname.

Each function bundle contains its own directory plus services/shared/, so
handlers import shared code as `from shared.logger import get_logger`.
Third-party packages come from services/<folder>/requirements.txt and are
pip-installed into the bundle inside the Lambda build image.
"""
from __future__ import annotations

import os
from pathlib import Path

import aws_cdk as cdk
from aws_cdk import aws_apigateway as apigw
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as _lambda
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct

from .core_stack import import_hosted_zone
from .domain import DomainConfig, default_domain_config
from .environment import Environment

LAMBDA_RUNTIME = _lambda.Runtime.PYTHON_3_12
SERVICES_DIR = Path(__file__).resolve().parents[2] / "services"
SHARED_DIR_NAME = "shared"

CORS_HEADERS = ["Content-Type", "X-Amz-Date", "Authorization", "X-Api-Key"]

ROOT_HANDLER_CODE = """
import json


def handler(event, context):
    return {
        "statusCode": 200,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key",
        },
        "body": json.dumps({"message": "Hello, from %(root_domain)s"}),
    }
"""


def discover_functions(services_dir: Path) -> list[str]:
    """Directories under services_dir that contain a handler.py, sorted."""
    if not services_dir.is_dir():
        return []
    return sorted(
        entry.name
        for entry in services_dir.iterdir()
        if entry.is_dir()
        and entry.name != SHARED_DIR_NAME
        and not entry.name.startswith((".", "_"))
        and (entry / "handler.py").is_file()
    )


def route_for(folder: str) -> str:
    return folder.replace("_", "-")


def bundling_command(folder: str) -> list[str]:
    """Install the folder's requirements next to its code and the shared package."""
    return [
        "bash",
        "-c",
        "set -euxo pipefail; "
        f"pip install -q -r {folder}/requirements.txt -t /asset-output; "
        f"cp -R {folder} {SHARED_DIR_NAME} /asset-output/",
    ]


class LambdaStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        environment: Environment,
        domain_config: DomainConfig | None = None,
        services_dir: Path = SERVICES_DIR,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        domain_config = domain_config or default_domain_config()
        hosted_zone = import_hosted_zone(self, domain_config)
        self.functions: dict[str, _lambda.Function] = {}

        # ----------------------------------------------------------------
        # Certificate: *.<prefix>.<root>
        # ----------------------------------------------------------------
        environment_domain = domain_config.environment_domain(environment)
        certificate = acm.Certificate(
            self, "ApiCertificate",
            domain_name=f"*.{environment_domain}",
            validation=acm.CertificateValidation.from_dns(hosted_zone),
        )

        # ----------------------------------------------------------------
        # REST API
        # ----------------------------------------------------------------
        self.api = apigw.RestApi(
            self, "MainApi",
            rest_api_name=f"{environment.prefix}-api",
            default_cors_preflight_options=apigw.CorsOptions(
                allow_origins=apigw.Cors.ALL_ORIGINS,
                allow_methods=apigw.Cors.ALL_METHODS,
                allow_headers=CORS_HEADERS,
            ),
            binary_media_types=["*/*"],
            deploy_options=apigw.StageOptions(
                stage_name="prod",
                logging_level=apigw.MethodLoggingLevel.INFO,
                metrics_enabled=True,
            ),
        )

        root_fn = _lambda.Function(
            self, "RootLambda",
            runtime=LAMBDA_RUNTIME,
            handler="index.handler",
            code=_lambda.Code.from_inline(
                ROOT_HANDLER_CODE % {"root_domain": domain_config.root_domain}
            ),
        )
        self.functions["root"] = root_fn
        self.api.root.add_method("GET", apigw.LambdaIntegration(root_fn, proxy=True))

        # ----------------------------------------------------------------
        # Custom domain: api.<prefix>.<root>
        # ----------------------------------------------------------------
        api_domain_name = domain_config.app_domain("api", environment)
        api_domain = apigw.DomainName(
            self, "ApiDomain",
            domain_name=api_domain_name,
            certificate=certificate,
            endpoint_type=apigw.EndpointType.REGIONAL,
        )
        apigw.BasePathMapping(
            self, "ApiPathMapping",
            domain_name=api_domain,
            rest_api=self.api,
        )
        route53.ARecord(
            self, "ApiDnsRecord",
            zone=hosted_zone,
            record_name=api_domain_name,
            target=route53.RecordTarget.from_alias(targets.ApiGatewayDomain(api_domain)),
        )
        cdk.CfnOutput(self, "ApiCustomDomainUrl", value=f"https://{api_domain_name}")

        # ----------------------------------------------------------------
        # One function per services/<folder>
        # ----------------------------------------------------------------
        folders = discover_functions(services_dir)
        common_env = {
            "DEPLOY_ENVIRONMENT": environment.name,
            "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO"),
        }
        if environment.version:
            common_env["DEPLOY_VERSION"] = environment.version

        for folder in folders:
            route = route_for(folder)
            others = [name for name in folders if name != folder]

            fn = _lambda.Function(
                self, f"{folder.title().replace('_', '')}Function",
                function_name=environment.resource_name(route),
                runtime=LAMBDA_RUNTIME,
                architecture=_lambda.Architecture.ARM_64,
                handler=f"{folder}.handler.handler",
                code=_lambda.Code.from_asset(
                    str(services_dir),
                    exclude=others + ["**/__pycache__", "**/*.pyc"],
                    bundling=cdk.BundlingOptions(
                        image=LAMBDA_RUNTIME.bundling_image,
                        platform="linux/arm64",
                        command=bundling_command(folder),
                    ),
                ),
                environment=common_env,
                tracing=_lambda.Tracing.ACTIVE,
                timeout=cdk.Duration.seconds(30),
                memory_size=256,
            )
            fn.role.add_managed_policy(
                iam.ManagedPolicy.from_aws_managed_policy_name("AWSLambda_ReadOnlyAccess")
            )
            self.functions[route] = fn

            integration = apigw.LambdaIntegration(fn, proxy=True)
            resource = self.api.root.add_resource(route)
            resource.add_method("ANY", integration)
            resource.add_resource("{proxy+}").add_method("ANY", integration)

            cdk.CfnOutput(
                self, f"{folder.title().replace('_', '')}LambdaEndpoint",
                value=f"https://{api_domain_name}/{route}",
            )
