import pytest

tpm2_pytss = pytest.importorskip("tpm2_pytss")

from tpm2_pytss import ESYS_TR, TPM2_ALG, TPM2_ECC, TPMA_OBJECT  # noqa: E402

from tssbench import workloads  # noqa: E402


class FakeTpm:
    """Records ESAPI calls and returns canned responses."""

    def __init__(self, unsealed=b"secrets", verify_error=None):
        self.unsealed = unsealed
        self.verify_error = verify_error
        self.calls = []
        self.created = []
        self.flushed = []
        self.auth = {}
        self._next_handle = 0x80000000

    def create_primary(self, in_sensitive, in_public, primary_handle):
        self.calls.append("create_primary")
        self._next_handle += 1
        self.created.append((self._next_handle, in_sensitive, in_public, primary_handle))
        return self._next_handle, None, None, None, None

    def tr_set_auth(self, handle, auth):
        self.calls.append("tr_set_auth")
        self.auth[handle] = auth

    def unseal(self, handle):
        self.calls.append("unseal")
        return self.unsealed

    def pcr_event(self, pcr, data):
        self.calls.append("pcr_event")
        self.pcr_events = getattr(self, "pcr_events", []) + [(pcr, data)]

    def get_random(self, count):
        self.calls.append("get_random")
        return bytes(range(1, count + 1))

    def sign(self, handle, digest, scheme, validation):
        self.calls.append("sign")
        self.signed = (handle, bytes(digest), scheme, validation)
        return "signature"

    def verify_signature(self, handle, digest, signature):
        self.calls.append("verify_signature")
        if self.verify_error is not None:
            raise self.verify_error
        return "ticket"

    def flush_context(self, handle):
        self.calls.append("flush_context")
        self.flushed.append(handle)


class FakeSession:
    def __init__(self, tpm):
        self.tpm = tpm


def test_seal_unseal_round_trip():
    """The sealed secret comes back unchanged and the object is flushed."""
    tpm = FakeTpm()

    assert workloads.run_seal_unseal(FakeSession(tpm)) is True

    assert tpm.calls == ["create_primary", "tr_set_auth", "unseal", "flush_context"]
    handle, sensitive, public, hierarchy = tpm.created[0]
    assert hierarchy == ESYS_TR.OWNER
    assert tpm.auth[handle] == b"password"
    assert bytes(sensitive.sensitive.data) == b"secrets"
    assert bytes(sensitive.sensitive.userAuth) == b"password"
    assert tpm.flushed == [handle]


def test_seal_unseal_detects_wrong_data():
    tpm = FakeTpm(unsealed=b"secretz")

    assert workloads.run_seal_unseal(FakeSession(tpm)) is False
    assert len(tpm.flushed) == 1


def test_pcr_extend():
    tpm = FakeTpm()

    assert workloads.run_pcr_extend(FakeSession(tpm)) is True
    assert tpm.pcr_events == [(ESYS_TR.PCR0, b"measurement")]


@pytest.mark.parametrize("run", [workloads.run_rsa_2048, workloads.run_ecc_p256])
def test_create_sign_verify_sequence(run):
    tpm = FakeTpm()

    assert run(FakeSession(tpm)) is True

    assert tpm.calls == [
        "get_random",
        "create_primary",
        "sign",
        "verify_signature",
        "flush_context",
    ]
    handle = tpm.created[0][0]
    assert tpm.signed[0] == handle
    assert tpm.signed[1] == bytes(32)
    assert tpm.signed[2].scheme == TPM2_ALG.NULL
    assert tpm.flushed == [handle]


@pytest.mark.parametrize("run", [workloads.run_rsa_2048, workloads.run_ecc_p256])
def test_verify_failure_propagates(run):
    """A rejected signature is not swallowed; the key is still flushed."""
    tpm = FakeTpm(verify_error=RuntimeError("TPM_RC_SIGNATURE"))

    with pytest.raises(RuntimeError, match="TPM_RC_SIGNATURE"):
        run(FakeSession(tpm))

    assert len(tpm.flushed) == 1


def test_seal_template():
    public = workloads.seal_template().publicArea

    assert public.type == TPM2_ALG.KEYEDHASH
    assert public.nameAlg == TPM2_ALG.SHA256
    assert public.parameters.keyedHashDetail.scheme.scheme == TPM2_ALG.NULL
    for attr in (
        TPMA_OBJECT.FIXEDTPM,
        TPMA_OBJECT.FIXEDPARENT,
        TPMA_OBJECT.USERWITHAUTH,
        TPMA_OBJECT.NODA,
    ):
        assert public.objectAttributes & attr
    assert not public.objectAttributes & TPMA_OBJECT.SENSITIVEDATAORIGIN


def test_rsa_template():
    public = workloads.rsa_2048_template(b"\x01\x02\x03\x04").publicArea
    rsa = public.parameters.rsaDetail

    assert public.type == TPM2_ALG.RSA
    assert rsa.keyBits == 2048
    assert rsa.scheme.scheme == TPM2_ALG.RSAPSS
    assert rsa.scheme.details.rsapss.hashAlg == TPM2_ALG.SHA256
    assert public.objectAttributes & TPMA_OBJECT.SIGN_ENCRYPT
    assert public.objectAttributes & TPMA_OBJECT.SENSITIVEDATAORIGIN
    assert bytes(public.unique.rsa) == b"\x01\x02\x03\x04"


def test_ecc_template():
    public = workloads.ecc_p256_template(b"\x01\x02\x03\x04").publicArea
    ecc = public.parameters.eccDetail

    assert public.type == TPM2_ALG.ECC
    assert ecc.curveID == TPM2_ECC.NIST_P256
    assert ecc.scheme.scheme == TPM2_ALG.ECDSA
    assert ecc.scheme.details.ecdsa.hashAlg == TPM2_ALG.SHA256
    assert public.objectAttributes & TPMA_OBJECT.SIGN_ENCRYPT
    assert bytes(public.unique.ecc.x) == b"\x01\x02\x03\x04"
