"""Tests for the badge-trust command line."""

import json

import pytest
import respx
from click.testing import CliRunner
from httpx import Response

from badge_trust.cli import main
from badge_trust.key_codec import KeyFormat, decode_public_key, encode_private_key
from badge_trust.signature import SignatureVerifier

ISSUER_URL = "https://issuer.example.org/issuer"
WELL_KNOWN = "https://university.edu/.well-known/openbadges-issuer.json"


@pytest.fixture
def run(engine):
    runner = CliRunner()

    def invoke(*args, input=None):
        return runner.invoke(main, list(args), obj={"engine": engine}, input=input)

    return invoke


class TestValidateDomain:
    """Tests for the validate-domain command."""

    def test_json_output(self, run):
        result = run("--json-output", "validate-domain", "https://demo.example.org")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["type"] == "testing"
        assert data["valid"] is True

    def test_rejected_domain(self, run):
        result = run("validate-domain", "https://blocked.example")

        assert result.exit_code == 1
        assert "REJECTED" in result.output


class TestVerifyIssuer:
    """Tests for issuer commands."""

    @respx.mock
    def test_verify_then_show(self, run, well_known_doc):
        respx.get(WELL_KNOWN).mock(return_value=Response(200, json=well_known_doc))

        result = run("verify-issuer", "university.edu")
        assert result.exit_code == 0
        assert "VERIFIED" in result.output

        shown = run("--json-output", "issuer", "university.edu")
        assert shown.exit_code == 0
        assert json.loads(shown.output)["displayName"] == "State University"

        listed = run("--json-output", "issuers")
        assert [r["domain"] for r in json.loads(listed.output)] == ["university.edu"]

    @respx.mock
    def test_failed_verification(self, run, well_known_doc):
        del well_known_doc["name"]
        respx.get(WELL_KNOWN).mock(return_value=Response(200, json=well_known_doc))

        result = run("--json-output", "verify-issuer", "university.edu")

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["error"]["kind"] == "SchemaValidationFailure"
        assert data["error"]["details"]["missingFields"] == ["name"]

    def test_unknown_issuer(self, run):
        result = run("issuer", "nowhere.example")

        assert result.exit_code == 1
        assert "Issuer not found" in result.output

    def test_empty_list(self, run):
        result = run("issuers")

        assert result.exit_code == 0
        assert "No issuers" in result.output

    @respx.mock
    def test_verify_issuer_url(self, run):
        respx.get(ISSUER_URL).mock(
            return_value=Response(200, json={"id": ISSUER_URL, "type": "Profile", "name": "X"})
        )

        result = run("--json-output", "verify-issuer-url", ISSUER_URL)

        assert result.exit_code == 0
        assert json.loads(result.output)["type"] == "remote_verified"

    @respx.mock
    def test_cache_public_key(self, run, key_cache, public_multibase):
        respx.get(ISSUER_URL).mock(
            return_value=Response(
                200,
                json={
                    "id": ISSUER_URL,
                    "type": "Profile",
                    "name": "X",
                    "publicKey": {"publicKeyMultibase": public_multibase},
                },
            )
        )

        result = run("cache-public-key", ISSUER_URL)

        assert result.exit_code == 0
        assert key_cache.get("issuer.example.org") is not None


class TestVerify:
    """Tests for the verify command."""

    @respx.mock
    def test_verify_file(self, run, tmp_path, v3_credential):
        respx.get(ISSUER_URL).mock(
            return_value=Response(200, json={"id": ISSUER_URL, "type": "Profile", "name": "X"})
        )
        path = tmp_path / "badge.json"
        path.write_text(json.dumps(v3_credential))

        result = run("--json-output", "verify", str(path))

        assert result.exit_code == 0
        assert json.loads(result.output)["trustLevel"] == "remote_verified"

    def test_verify_stdin_invalid_structure(self, run):
        result = run("verify", "-", input='{"type": "Assertion"}')

        assert result.exit_code == 1
        assert "Missing @context" in result.output

    def test_invalid_json(self, run):
        result = run("--json-output", "verify", "-", input="{broken")

        assert result.exit_code == 2
        assert json.loads(result.output)["kind"] == "InvalidJSON"

    def test_missing_file(self, run):
        result = run("verify", "does-not-exist.json")

        assert result.exit_code != 0
        assert "File not found" in result.output


class TestSign:
    """Tests for the sign command."""

    def test_sign_with_private_key_file(self, run, tmp_path, v3_credential, private_key):
        credential_path = tmp_path / "badge.json"
        credential_path.write_text(json.dumps(v3_credential))
        key_path = tmp_path / "private-key.pem"
        key_path.write_text(encode_private_key(private_key))
        output = tmp_path / "signed.json"

        result = run(
            "sign",
            str(credential_path),
            "issuer.example.org",
            "--private-key-file",
            str(key_path),
            "--output",
            str(output),
        )

        assert result.exit_code == 0
        signed = json.loads(output.read_text())
        assert signed["proof"]["verificationMethod"] == ISSUER_URL + "#key"
        assert SignatureVerifier().verify(signed, private_key.public_key()).valid

    def test_sign_foreign_domain_without_key(self, run, tmp_path, v3_credential):
        credential_path = tmp_path / "badge.json"
        credential_path.write_text(json.dumps(v3_credential))

        result = run("--json-output", "sign", str(credential_path), "university.edu")

        assert result.exit_code == 2
        assert json.loads(result.output)["kind"] == "DomainPolicyBlocked"


class TestGenerateKeys:
    """Tests for the generate-keys command."""

    def test_generate(self, run, tmp_path):
        out = tmp_path / "issuer-files"

        result = run(
            "--json-output",
            "generate-keys",
            "--name",
            "State University",
            "--url",
            "https://university.edu",
            "--output-dir",
            str(out),
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        document = json.loads((out / "openbadges-issuer.json").read_text())
        assert document["publicKey"]["publicKeyMultibase"] == data["publicKeyMultibase"]
        decode_public_key(data["publicKeyMultibase"], KeyFormat.MULTIBASE)
