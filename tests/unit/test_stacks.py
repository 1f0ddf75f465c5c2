"""
Synthesis tests for the CDK stacks.
Each test builds a stack for a known environment and checks that the
environment-derived names reach the CloudFormation template.
"""
import pytest
from pydantic import ValidationError

from sandbox.config import VaultwardenConfig, mirror_commands
from sandbox.domain import DomainConfig
from sandbox.environment import Environment

STAGING = Environment(name="staging", username="tester", version="1.2.3")
PREVIEW = Environment(name="preview", pr_number="17", username="tester")
DOMAINS = DomainConfig(root_domain="ebbo.dev", hosted_zone_id="Z123")
CDK_ENV = {"account": "123456789012", "region": "us-east-1"}


def _template(stack):
    from aws_cdk.assertions import Template
    return Template.from_stack(stack)


def test_mirror_commands():
    cmd = mirror_commands("vaultwarden/server", "123.dkr.ecr.us-east-1.amazonaws.com", "staging-vaultwarden/server", "1.30.0")
    assert cmd.startswith("docker pull vaultwarden/server:1.30.0 && ")
    assert cmd.endswith("docker push 123.dkr.ecr.us-east-1.amazonaws.com/staging-vaultwarden/server:1.30.0")


def test_vaultwarden_config_env_overrides(monkeypatch):
    monkeypatch.setenv("VAULTWARDEN_BASE_VERSION", "1.30.0")
    monkeypatch.setenv("VAULTWARDEN_DOMAIN_NAME", "vault.example.org")
    config = VaultwardenConfig()
    assert config.base_version == "1.30.0"
    assert config.domain_name == "vault.example.org"
    assert config.cluster_name == "vaultwarden-cluster"


def test_core_stack_outputs_environment_domain(cdk_app):
    import aws_cdk as cdk
    from sandbox.core_stack import CoreStack

    stack = CoreStack(
        cdk_app, STAGING.stack_name("CoreStack"),
        environment=STAGING, domain_config=DOMAINS, env=cdk.Environment(**CDK_ENV),
    )
    outputs = _template(stack).to_json()["Outputs"]

    assert stack.stack_name == "staging-core-stack"
    assert outputs["EnvironmentDomain"]["Value"] == "staging.ebbo.dev"
    assert outputs["Username"]["Value"] == "tester"


def test_lambda_stack_names_api_and_functions(cdk_app):
    import aws_cdk as cdk
    from aws_cdk.assertions import Match
    from sandbox.lambda_stack import LambdaStack

    stack = LambdaStack(
        cdk_app, PREVIEW.stack_name("LambdaStack"),
        environment=PREVIEW, domain_config=DOMAINS, env=cdk.Environment(**CDK_ENV),
    )
    template = _template(stack)

    template.has_resource_properties("AWS::ApiGateway::RestApi", {"Name": "preview-17-api"})
    template.has_resource_properties("AWS::ApiGateway::DomainName", {
        "DomainName": "api.preview-17.ebbo.dev",
    })
    template.has_resource_properties("AWS::CertificateManager::Certificate", {
        "DomainName": "*.preview-17.ebbo.dev",
    })
    template.has_resource_properties("AWS::Lambda::Function", {
        "FunctionName": "preview-17-api-server",
        "Handler": "api_server.handler.handler",
        "Environment": {"Variables": Match.object_like({"DEPLOY_ENVIRONMENT": "preview"})},
    })
    template.has_resource_properties("AWS::Lambda::Function", {
        "FunctionName": "preview-17-account-usage",
    })
    assert set(stack.functions) == {"root", "account-usage", "api-server"}


def test_lambda_stack_without_services(cdk_app, tmp_path):
    import aws_cdk as cdk
    from sandbox.lambda_stack import LambdaStack

    stack = LambdaStack(
        cdk_app, STAGING.stack_name("LambdaStack"),
        environment=STAGING, domain_config=DOMAINS, services_dir=tmp_path,
        env=cdk.Environment(**CDK_ENV),
    )
    _template(stack).resource_count_is("AWS::Lambda::Function", 1)


def test_vaultwarden_stack_uses_environment_names(cdk_app):
    import aws_cdk as cdk
    from sandbox.vaultwarden_stack import VaultwardenStack

    stack = VaultwardenStack(
        cdk_app, STAGING.stack_name("VaultwardenStack"),
        environment=STAGING, domain_config=DOMAINS, config=VaultwardenConfig(),
        env=cdk.Environment(**CDK_ENV),
    )
    template = _template(stack)

    template.has_resource_properties("AWS::ECS::Cluster", {"ClusterName": "staging-vaultwarden-cluster"})
    template.has_resource_properties("AWS::ECR::Repository", {
        "RepositoryName": "staging-vaultwarden/server",
    })
    template.has_resource_properties("AWS::Route53::RecordSet", {"Name": "vault.staging.ebbo.dev."})
    assert template.to_json()["Outputs"]["VaultwardenDomainName"]["Value"] == "vault.staging.ebbo.dev"


@pytest.mark.parametrize("days, expected", [(7, "AFTER_7_DAYS"), (30, "AFTER_30_DAYS"), (45, "AFTER_14_DAYS")])
def test_lifecycle_policy_mapping(cdk_app, days, expected):
    from aws_cdk import aws_efs as efs
    from sandbox.vaultwarden_stack import lifecycle_policy

    assert lifecycle_policy(days) == getattr(efs.LifecyclePolicy, expected)


@pytest.mark.parametrize("hits", ["2", "-1"])
def test_out_of_infrequent_access_hits_outside_efs_options_rejected(monkeypatch, hits):
    monkeypatch.setenv("VAULTWARDEN_OUT_OF_INFREQUENT_ACCESS_HITS", hits)
    with pytest.raises(ValidationError):
        VaultwardenConfig()


def test_out_of_infrequent_access_policy_mapping(cdk_app):
    from aws_cdk import aws_efs as efs
    from sandbox.vaultwarden_stack import out_of_infrequent_access_policy

    assert out_of_infrequent_access_policy(1) == efs.OutOfInfrequentAccessPolicy.AFTER_1_ACCESS
    assert out_of_infrequent_access_policy(0) is None


@pytest.mark.parametrize("hits, moves_back", [("1", True), ("0", False)])
def test_file_system_follows_out_of_infrequent_access_setting(cdk_app, monkeypatch, hits, moves_back):
    import aws_cdk as cdk
    from sandbox.vaultwarden_stack import VaultwardenStack

    monkeypatch.setenv("VAULTWARDEN_OUT_OF_INFREQUENT_ACCESS_HITS", hits)
    stack = VaultwardenStack(
        cdk_app, STAGING.stack_name("VaultwardenStack"),
        environment=STAGING, domain_config=DOMAINS, config=VaultwardenConfig(),
        env=cdk.Environment(**CDK_ENV),
    )
    file_systems = _template(stack).find_resources("AWS::EFS::FileSystem")
    (file_system,) = file_systems.values()
    policies = file_system["Properties"]["LifecyclePolicies"]

    assert {"TransitionToIA": "AFTER_14_DAYS"} in policies
    assert ({"TransitionToPrimaryStorageClass": "AFTER_1_ACCESS"} in policies) is moves_back


# ---------------------------------------------------------------------------
# Lambda bundles
# ---------------------------------------------------------------------------

def test_every_function_declares_its_requirements(cdk_app):
    from sandbox.lambda_stack import SERVICES_DIR, discover_functions

    folders = discover_functions(SERVICES_DIR)
    assert folders == ["account_usage", "api_server"]
    for folder in folders:
        assert (SERVICES_DIR / folder / "requirements.txt").is_file(), folder


@pytest.mark.parametrize("folder, requirement", [
    ("api_server", "pydantic"),
    ("account_usage", "aws-xray-sdk"),
])
def test_handler_third_party_imports_are_declared(cdk_app, folder, requirement):
    from sandbox.lambda_stack import SERVICES_DIR

    lines = (SERVICES_DIR / folder / "requirements.txt").read_text().splitlines()
    assert any(line.startswith(requirement) for line in lines)


def test_bundling_command_installs_requirements_and_copies_shared(cdk_app):
    from sandbox.lambda_stack import bundling_command

    command = bundling_command("api_server")
    assert command[:2] == ["bash", "-c"]
    script = command[2]
    assert "pip install -q -r api_server/requirements.txt -t /asset-output" in script
    assert "cp -R api_server shared /asset-output/" in script
    assert script.index("pip install") < script.index("cp -R")


def test_lambda_functions_bundle_through_build_image(cdk_app, monkeypatch):
    import aws_cdk as cdk
    from sandbox import lambda_stack

    calls = []
    from_asset = lambda_stack._lambda.Code.from_asset

    def recording_from_asset(path, **options):
        calls.append(options)
        return from_asset(path, **options)

    monkeypatch.setattr(lambda_stack._lambda.Code, "from_asset", recording_from_asset)
    lambda_stack.LambdaStack(
        cdk_app, PREVIEW.stack_name("LambdaStack"),
        environment=PREVIEW, domain_config=DOMAINS, env=cdk.Environment(**CDK_ENV),
    )

    assert len(calls) == 2
    for options in calls:
        bundling = options["bundling"]
        assert bundling.platform == "linux/arm64"
        assert bundling.command[2].startswith("set -euxo pipefail; pip install")


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------

PREVIEW_CONTEXT = {
    "environment": "preview",
    "prNumber": "17",
    "username": "tester",
    "sha": "abc123",
    "rootDomain": "example.org",
    "hostedZoneId": "ZEXAMPLE",
    "account": "123456789012",
    "region": "us-east-1",
}


def _build(cdk_app, context):
    from app import build_app

    for key, value in context.items():
        cdk_app.node.set_context(key, value)
    return build_app(cdk_app)


def test_build_app_names_stacks_for_environment(cdk_app):
    stacks = _build(cdk_app, PREVIEW_CONTEXT)

    assert {key: stack.stack_name for key, stack in stacks.items()} == {
        "core": "preview-17-core-stack",
        "lambda": "preview-17-lambda-stack",
        "vaultwarden": "preview-17-vaultwarden-stack",
    }
    for key in ("lambda", "vaultwarden"):
        assert [dep.stack_name for dep in stacks[key].dependencies] == ["preview-17-core-stack"]


def test_build_app_applies_domain_overrides(cdk_app):
    stacks = _build(cdk_app, PREVIEW_CONTEXT)
    outputs = _template(stacks["core"]).to_json()["Outputs"]

    assert outputs["EnvironmentDomain"]["Value"] == "preview-17.example.org"
    assert outputs["HostedZoneId"]["Value"] == "ZEXAMPLE"
    _template(stacks["lambda"]).has_resource_properties("AWS::ApiGateway::DomainName", {
        "DomainName": "api.preview-17.example.org",
    })


def test_build_app_tags_resources_for_preview(cdk_app):
    from aws_cdk.assertions import Match

    stacks = _build(cdk_app, PREVIEW_CONTEXT)
    template = _template(stacks["lambda"])

    for tag in (
        {"Key": "Environment", "Value": "preview"},
        {"Key": "ManagedBy", "Value": "CDK"},
        {"Key": "PR", "Value": "17"},
        {"Key": "Preview", "Value": "true"},
        {"Key": "Version", "Value": "abc123"},
    ):
        template.has_resource_properties("AWS::Lambda::Function", {
            "FunctionName": "preview-17-api-server",
            "Tags": Match.array_with([tag]),
        })


def test_build_app_adds_preview_outputs(cdk_app):
    stacks = _build(cdk_app, PREVIEW_CONTEXT)
    outputs = _template(stacks["lambda"]).to_json()["Outputs"]

    assert outputs["EnvironmentType"]["Value"] == "Preview"
    assert outputs["PRNumber"]["Value"] == "17"


def test_build_app_non_preview_has_no_preview_outputs_or_tags(cdk_app):
    from aws_cdk.assertions import Match

    stacks = _build(cdk_app, {"environment": "staging", "username": "tester"})
    template = _template(stacks["lambda"])
    outputs = template.to_json()["Outputs"]

    assert stacks["lambda"].stack_name == "staging-lambda-stack"
    assert "EnvironmentType" not in outputs
    assert "PRNumber" not in outputs
    template.has_resource_properties("AWS::Lambda::Function", {
        "FunctionName": "staging-api-server",
        "Tags": Match.not_(Match.array_with([{"Key": "PR", "Value": Match.any_value()}])),
    })
