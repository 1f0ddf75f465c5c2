"""
Pytest configuration and shared fixtures.
Naming tests are pure and need nothing. Handler tests stub AWS with
botocore's Stubber. Stack tests synthesize CDK templates and need Node.js.
"""
import os
import shutil
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(ROOT, "infrastructure"))
sys.path.insert(0, os.path.join(ROOT, "services"))

# Must be set before aws_xray_sdk is imported, or patch_all() instruments boto3
os.environ.setdefault("AWS_XRAY_SDK_ENABLED", "false")

BUNDLING_STACKS = "aws:cdk:bundling-stacks"


@pytest.fixture(autouse=True)
def aws_env(monkeypatch):
    """Set fake AWS credentials so boto3 doesn't error in tests."""
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "test")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "test")
    monkeypatch.setenv("DEPLOY_ENVIRONMENT", "test")
    for key in list(os.environ):
        if key.startswith("VAULTWARDEN_"):
            monkeypatch.delenv(key)


@pytest.fixture
def lambda_context():
    class _Context:
        aws_request_id = "req-123"
        function_name = "test-function"

        def get_remaining_time_in_millis(self):
            return 30_000

    return _Context()


@pytest.fixture
def cdk_app():
    """A fresh CDK app. Skipped where the jsii runtime can't start."""
    if shutil.which("node") is None:
        pytest.skip("Node.js is required to synthesize CDK stacks")
    cdk = pytest.importorskip("aws_cdk")
    # No Docker bundling during synth; assets are staged as-is
    return cdk.App(context={BUNDLING_STACKS: []})
