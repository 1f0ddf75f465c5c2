#!/usr/bin/env python3
"""
Sandbox CDK App
===============
Every stack name, resource name and hostname is derived from the deployment
context, so developers and pull requests can deploy side by side:

  cdk deploy --all                                   → development-<you>-*
  cdk deploy --all -c environment=staging            → staging-*
  cdk deploy --all -c prNumber=17 -c sha=$GITHUB_SHA → preview-17-*

Stacks:
  CoreStack → LambdaStack, VaultwardenStack

Run: cdk deploy --all [-c key=value ...]
"""
import logging
import os

import aws_cdk as cdk

from sandbox.core_stack import CoreStack
from sandbox.domain import load_domain_config
from sandbox.environment import CONTEXT_KEYS, resolve_environment
from sandbox.lambda_stack import LambdaStack
from sandbox.vaultwarden_stack import VaultwardenStack


def deployment_context(app: cdk.App) -> dict:
    keys = CONTEXT_KEYS + ("rootDomain", "hostedZoneId")
    return {key: app.node.try_get_context(key) for key in keys}


def build_app(app: cdk.App) -> dict[str, cdk.Stack]:
    """Add every sandbox stack to app, named and tagged for the resolved environment."""
    context = deployment_context(app)

    environment = resolve_environment(context)
    domain_config = load_domain_config(context)

    for key, value in environment.tags().items():
        cdk.Tags.of(app).add(key, value)

    env = cdk.Environment(
        account=app.node.try_get_context("account") or os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=app.node.try_get_context("region") or os.environ.get("CDK_DEFAULT_REGION", "us-east-1"),
    )

    core_stack = CoreStack(
        app, environment.stack_name("CoreStack"),
        environment=environment,
        domain_config=domain_config,
        env=env,
    )
    lambda_stack = LambdaStack(
        app, environment.stack_name("LambdaStack"),
        environment=environment,
        domain_config=domain_config,
        env=env,
    )
    vaultwarden_stack = VaultwardenStack(
        app, environment.stack_name("VaultwardenStack"),
        environment=environment,
        domain_config=domain_config,
        env=env,
    )
    lambda_stack.add_dependency(core_stack)
    vaultwarden_stack.add_dependency(core_stack)

    if environment.is_preview:
        cdk.CfnOutput(lambda_stack, "EnvironmentType", value="Preview")
        cdk.CfnOutput(lambda_stack, "PRNumber", value=environment.pr_number)

    return {"core": core_stack, "lambda": lambda_stack, "vaultwarden": vaultwarden_stack}


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO))
    app = cdk.App()
    build_app(app)
    app.synth()
