"""
Private ECR repository for the Vaultwarden image.

The image is mirrored from Docker Hub by hand (see the ImagePullInstructions
output) because the tasks run without internet access.
"""
import aws_cdk as cdk
from aws_cdk import aws_ecr as ecr
from constructs import Construct

from .config import mirror_commands
from .environment import Environment

UPSTREAM_IMAGE = "vaultwarden/server"


class ImageRepository(Construct):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        environment: Environment,
        image_name: str = UPSTREAM_IMAGE,
        version: str = "latest",
    ):
        super().__init__(scope, id)

        # One repository per environment: "<prefix>-vaultwarden/server"
        image_basename = image_name.rsplit("/", 1)[-1]
        self.repository_name = f"{environment.resource_name('vaultwarden')}/{image_basename}"
        self.repository = ecr.Repository(
            self, "Repository",
            repository_name=self.repository_name,
            removal_policy=cdk.RemovalPolicy.DESTROY,
            empty_on_delete=True,
        )

        registry = f"{cdk.Aws.ACCOUNT_ID}.dkr.ecr.{cdk.Aws.REGION}.{cdk.Aws.URL_SUFFIX}"
        cdk.CfnOutput(
            self, "ImagePullInstructions",
            value="To copy the Vaultwarden image to this repository, run: "
                  + mirror_commands(image_name, registry, self.repository_name, version),
        )
