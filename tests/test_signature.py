"""Tests for Ed25519 signing and signature verification."""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from badge_trust.key_codec import b64url_encode
from badge_trust.signature import (
    SignatureOutcome,
    SignatureVerifier,
    canonicalize,
    extract_signature,
    resolve_verification_method,
)

verifier = SignatureVerifier()
METHOD = "https://issuer.example.org/issuer#key"


class TestCanonicalize:
    """Tests for the signed byte representation."""

    def test_compact_insertion_order(self):
        assert canonicalize({"b": 1, "a": [1, 2]}) == b'{"b":1,"a":[1,2]}'

    def test_proof_excluded(self):
        assert canonicalize({"a": 1, "proof": {"jws": "x"}}) == b'{"a":1}'

    def test_non_ascii_kept(self):
        assert canonicalize({"name": "Zoë"}) == '{"name":"Zoë"}'.encode("utf-8")

    def test_integral_floats_written_as_integers(self):
        credential = {"score": 1.0, "results": [{"value": -2.0}, 2.5], "big": 1e21}

        assert canonicalize(credential) == b'{"score":1,"results":[{"value":-2},2.5],"big":1e+21}'


class TestExtractSignature:
    """Tests for pulling signatures out of proofs."""

    def test_shapes(self):
        assert extract_signature("abc") == "abc"
        assert extract_signature({"jws": "a", "proofValue": "b"}) == "a"
        assert extract_signature({"proofValue": "b"}) == "b"
        assert extract_signature({"type": "Ed25519Signature2020"}) is None


class TestSignAndVerify:
    """Tests for the sign/verify contract."""

    def test_round_trip(self, v3_credential, private_key, public_key):
        signed = verifier.sign(v3_credential, private_key, METHOD)

        result = verifier.verify(signed.credential, public_key)

        assert result.valid
        assert result.reason is SignatureOutcome.SIGNATURE_VERIFIED
        assert result.signature_type == "Ed25519Signature2020"
        assert result.verification_method == METHOD

    def test_proof_shape(self, v3_credential, private_key):
        signed = verifier.sign(v3_credential, private_key, METHOD)
        proof = signed.credential["proof"]

        assert proof["type"] == "Ed25519Signature2020"
        assert proof["proofPurpose"] == "assertionMethod"
        assert proof["verificationMethod"] == METHOD
        assert proof["jws"] == signed.signature
        assert proof["created"].endswith("Z")
        assert "proof" not in v3_credential

    def test_tampered_field(self, v3_credential, private_key, public_key):
        signed = verifier.sign(v3_credential, private_key, METHOD).credential
        signed["credentialSubject"]["achievement"]["name"] = "Something else"

        result = verifier.verify(signed, public_key)

        assert not result.valid
        assert result.reason is SignatureOutcome.SIGNATURE_INVALID

    def test_wrong_key(self, v3_credential, private_key):
        signed = verifier.sign(v3_credential, private_key, METHOD).credential

        other = Ed25519PrivateKey.generate().public_key()
        assert verifier.verify(signed, other).reason is SignatureOutcome.SIGNATURE_INVALID

    def test_resigning_replaces_proof(self, v3_credential, private_key, public_key):
        first = verifier.sign(v3_credential, private_key, METHOD).credential
        second = verifier.sign(first, private_key, METHOD + "2").credential

        assert second["proof"]["verificationMethod"] == METHOD + "2"
        assert verifier.verify(second, public_key).valid

    def test_bare_string_proof(self, v3_credential, private_key, public_key):
        signature = b64url_encode(private_key.sign(canonicalize(v3_credential)))
        v3_credential["proof"] = signature

        result = verifier.verify(v3_credential, public_key)

        assert result.valid
        assert result.verification_method == "unknown"

    def test_padded_signature_accepted(self, v3_credential, private_key, public_key):
        signature = b64url_encode(private_key.sign(canonicalize(v3_credential)))
        v3_credential["proof"] = {"proofValue": signature + "=="}

        assert verifier.verify(v3_credential, public_key).valid

    def test_signature_over_javascript_number_form(self, v3_credential, private_key, public_key):
        v3_credential["credentialSubject"]["score"] = 1
        signature = b64url_encode(private_key.sign(canonicalize(v3_credential)))
        v3_credential["credentialSubject"]["score"] = 1.0
        v3_credential["proof"] = {"proofValue": signature}

        assert verifier.verify(v3_credential, public_key).valid


class TestVerificationOutcomes:
    """Tests for each non-success outcome."""

    def test_no_signature(self, v3_credential, public_key):
        result = verifier.verify(v3_credential, public_key)

        assert result.reason is SignatureOutcome.NO_SIGNATURE
        assert result.message == "Badge has no cryptographic proof/signature"

    def test_invalid_proof_format(self, v3_credential, public_key):
        v3_credential["proof"] = {"type": "Ed25519Signature2020"}

        assert verifier.verify(v3_credential, public_key).reason is (
            SignatureOutcome.INVALID_PROOF_FORMAT
        )

    def test_no_public_key(self, v3_credential, private_key):
        signed = verifier.sign(v3_credential, private_key, METHOD).credential

        assert verifier.verify(signed, None).reason is SignatureOutcome.NO_PUBLIC_KEY

    def test_undecodable_signature(self, v3_credential, public_key):
        v3_credential["proof"] = {"jws": "a"}

        assert verifier.verify(v3_credential, public_key).reason is (
            SignatureOutcome.SIGNATURE_INVALID
        )

    def test_to_dict(self, v3_credential, public_key):
        data = verifier.verify(v3_credential, public_key).to_dict()

        assert data == {
            "valid": False,
            "type": "no_signature",
            "message": "Badge has no cryptographic proof/signature",
        }


class TestResolveVerificationMethod:
    """Tests for choosing the proof's verificationMethod."""

    def test_explicit_wins(self, v3_credential):
        assert resolve_verification_method(v3_credential, verification_method="m") == "m"

    def test_issuer_url_argument(self, v3_credential):
        method = resolve_verification_method(
            v3_credential, issuer_url="https://university.edu/issuer/"
        )
        assert method == "https://university.edu/issuer#key"

    def test_credential_issuer(self, v3_credential):
        assert resolve_verification_method(v3_credential) == METHOD

    def test_v2_string_issuer_fragment_dropped(self):
        method = resolve_verification_method({"issuer": "https://college.org/issuer#main"})
        assert method == "https://college.org/issuer#key"

    def test_domain(self):
        method = resolve_verification_method({}, domain="University.edu")
        assert method == "https://university.edu/.well-known/openbadges-issuer.json#key"

    def test_nothing_to_go_on(self):
        with pytest.raises(ValueError):
            resolve_verification_method({})
