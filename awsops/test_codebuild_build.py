"""test_codebuild_build.py - Tests for the codebuild_start_build resource."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock

from awsops.aws_clients import ProviderClients
from awsops.codebuild_build import CodeBuildStartBuildResource, build_environment_variables, map_build
from awsops.errors import ValidationError
from awsops.test_fakes import client_error

BUILD = {
    "id": "proj:1234",
    "arn": "arn:aws:codebuild:us-east-1:123456789012:build/proj:1234",
    "buildNumber": 7,
    "projectName": "proj",
    "environment": {
        "image": "aws/codebuild/standard:7.0",
        "environmentVariables": [{"name": "STAGE", "value": "prod", "type": "PLAINTEXT"}],
    },
}


class EnvironmentVariableTests(unittest.TestCase):
    def test_type_defaults_to_plaintext(self):
        self.assertEqual(
            build_environment_variables([{"name": "A", "value": "1"}]),
            [{"name": "A", "value": "1", "type": "PLAINTEXT"}],
        )

    def test_invalid_type(self):
        with self.assertRaises(ValidationError) as ctx:
            build_environment_variables([{"name": "A", "value": "1", "type": "VAULT"}])
        self.assertIn("'VAULT'", str(ctx.exception))

    def test_empty(self):
        self.assertEqual(build_environment_variables(None), [])


class MapBuildTests(unittest.TestCase):
    def test_maps_fields(self):
        state = map_build(BUILD)
        self.assertEqual(state["id"], "proj:1234")
        self.assertEqual(state["build_id"], "proj:1234")
        self.assertEqual(state["build_number"], 7)
        self.assertEqual(state["build_image"], "aws/codebuild/standard:7.0")
        self.assertEqual(
            state["build_environment_variables"], [{"name": "STAGE", "value": "prod", "type": "PLAINTEXT"}]
        )

    def test_no_environment(self):
        state = map_build({"id": "p:1"})
        self.assertIsNone(state["build_image"])
        self.assertIsNone(state["build_environment_variables"])


class CodeBuildResourceTests(unittest.TestCase):
    def setUp(self):
        self.codebuild = MagicMock()
        self.ssm = MagicMock()
        self.secrets = MagicMock()
        self.codebuild.start_build.return_value = {"build": BUILD}
        self.resource = CodeBuildStartBuildResource(
            ProviderClients(codebuild=self.codebuild, ssm=self.ssm, secretsmanager=self.secrets)
        )

    def test_start_without_overrides(self):
        resp = self.resource.create({"project_name": "proj"})
        self.assertTrue(resp.ok)
        self.codebuild.start_build.assert_called_once_with(projectName="proj")
        self.assertEqual(resp.state["build_arn"], BUILD["arn"])

    def test_references_checked_before_start(self):
        resp = self.resource.create(
            {
                "project_name": "proj",
                "environment_variables": [
                    {"name": "P", "value": "/app/param", "type": "PARAMETER_STORE"},
                    {"name": "S", "value": "app/secret", "type": "SECRETS_MANAGER"},
                ],
            }
        )
        self.assertTrue(resp.ok)
        self.ssm.get_parameter.assert_called_once_with(Name="/app/param", WithDecryption=False)
        self.secrets.describe_secret.assert_called_once_with(SecretId="app/secret")
        overrides = self.codebuild.start_build.call_args.kwargs["environmentVariablesOverride"]
        self.assertEqual([v["type"] for v in overrides], ["PARAMETER_STORE", "SECRETS_MANAGER"])

    def test_every_missing_reference_reported(self):
        self.ssm.get_parameter.side_effect = client_error("ParameterNotFound", "GetParameter")
        self.secrets.describe_secret.side_effect = client_error("ResourceNotFoundException", "DescribeSecret")
        resp = self.resource.create(
            {
                "project_name": "proj",
                "environment_variables": [
                    {"name": "P", "value": "/missing", "type": "PARAMETER_STORE"},
                    {"name": "S", "value": "missing", "type": "SECRETS_MANAGER"},
                ],
            }
        )
        self.assertIsNone(resp.state)
        self.assertEqual(
            [d.summary for d in resp.diagnostics.errors()],
            ["Parameter Store validation failed", "Secrets Manager validation failed"],
        )
        self.codebuild.start_build.assert_not_called()

    def test_start_error(self):
        self.codebuild.start_build.side_effect = client_error("ResourceNotFoundException", "StartBuild")
        resp = self.resource.create({"project_name": "nope"})
        self.assertIsNone(resp.state)
        self.assertIn("project 'nope'", resp.diagnostics.errors()[0].detail)

    def test_update_unchanged_triggers(self):
        created = self.resource.create({"project_name": "proj", "triggers": {"sha": "a"}})
        updated = self.resource.update({"project_name": "proj", "triggers": {"sha": "a"}}, created.state)
        self.assertEqual(self.codebuild.start_build.call_count, 1)
        self.assertEqual(updated.state["build_id"], "proj:1234")

    def test_update_failed_reference_keeps_prior_state(self):
        created = self.resource.create({"project_name": "proj", "triggers": {"sha": "a"}})
        self.ssm.get_parameter.side_effect = client_error("ParameterNotFound", "GetParameter")
        updated = self.resource.update(
            {
                "project_name": "proj",
                "triggers": {"sha": "b"},
                "environment_variables": [{"name": "P", "value": "/x", "type": "PARAMETER_STORE"}],
            },
            created.state,
        )
        self.assertEqual(updated.state, created.state)
        self.assertTrue(updated.diagnostics.has_error())


if __name__ == "__main__":
    unittest.main()
