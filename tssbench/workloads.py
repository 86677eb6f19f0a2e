"""
The TPM operation sequences being measured.

Each function takes a live DeviceSession, performs one complete sequence against
its ESAPI handle and returns True on success. Objects created along the way are
flushed before returning. TPM faults surface as ``TSS2_Exception`` and are left
to propagate; nothing here retries.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Generator

from tpm2_pytss import (
    ESYS_TR,
    TPM2_ALG,
    TPM2_ECC,
    TPM2_RH,
    TPM2_ST,
    TPM2B_AUTH,
    TPM2B_DIGEST,
    TPM2B_ECC_PARAMETER,
    TPM2B_PUBLIC,
    TPM2B_PUBLIC_KEY_RSA,
    TPM2B_SENSITIVE_CREATE,
    TPM2B_SENSITIVE_DATA,
    TPMA_OBJECT,
    TPMS_SENSITIVE_CREATE,
    TPMT_PUBLIC,
    TPMT_SIG_SCHEME,
    TPMT_TK_HASHCHECK,
)

if TYPE_CHECKING:
    from tssbench.device import DeviceSession

logger = logging.getLogger(__name__)

SEAL_AUTH = b"password"
SEAL_SECRET = b"secrets"
PCR_MEASUREMENT = b"measurement"
RANDOM_SEED_BYTES = 4
# SHA-256 sized placeholder; the TPM signs whatever digest it is handed.
ZERO_DIGEST = bytes(32)

SIGNING_KEY_ATTRS = (
    TPMA_OBJECT.FIXEDTPM
    | TPMA_OBJECT.FIXEDPARENT
    | TPMA_OBJECT.SENSITIVEDATAORIGIN
    | TPMA_OBJECT.USERWITHAUTH
    | TPMA_OBJECT.SIGN_ENCRYPT
    | TPMA_OBJECT.NODA
)


@contextmanager
def transient_object(session: DeviceSession, handle: ESYS_TR) -> Generator[ESYS_TR, None, None]:
    """Flush a transient object when the block exits."""
    try:
        yield handle
    finally:
        session.tpm.flush_context(handle)


def seal_template() -> TPM2B_PUBLIC:
    """Keyed-hash object usable only for sealing data."""
    public = TPMT_PUBLIC(
        type=TPM2_ALG.KEYEDHASH,
        nameAlg=TPM2_ALG.SHA256,
        objectAttributes=(
            TPMA_OBJECT.FIXEDTPM
            | TPMA_OBJECT.FIXEDPARENT
            | TPMA_OBJECT.USERWITHAUTH
            | TPMA_OBJECT.NODA
        ),
    )
    public.parameters.keyedHashDetail.scheme.scheme = TPM2_ALG.NULL
    return TPM2B_PUBLIC(public)


def rsa_2048_template(unique: bytes) -> TPM2B_PUBLIC:
    """RSA-2048 RSASSA-PSS/SHA-256 signing key, seeded with ``unique``."""
    public = TPMT_PUBLIC(
        type=TPM2_ALG.RSA,
        nameAlg=TPM2_ALG.SHA256,
        objectAttributes=SIGNING_KEY_ATTRS,
    )
    rsa = public.parameters.rsaDetail
    rsa.symmetric.algorithm = TPM2_ALG.NULL
    rsa.scheme.scheme = TPM2_ALG.RSAPSS
    rsa.scheme.details.rsapss.hashAlg = TPM2_ALG.SHA256
    rsa.keyBits = 2048
    rsa.exponent = 0
    public.unique.rsa = TPM2B_PUBLIC_KEY_RSA(unique)
    return TPM2B_PUBLIC(public)


def ecc_p256_template(unique: bytes) -> TPM2B_PUBLIC:
    """NIST P-256 ECDSA/SHA-256 signing key, seeded with ``unique``."""
    public = TPMT_PUBLIC(
        type=TPM2_ALG.ECC,
        nameAlg=TPM2_ALG.SHA256,
        objectAttributes=SIGNING_KEY_ATTRS,
    )
    ecc = public.parameters.eccDetail
    ecc.symmetric.algorithm = TPM2_ALG.NULL
    ecc.scheme.scheme = TPM2_ALG.ECDSA
    ecc.scheme.details.ecdsa.hashAlg = TPM2_ALG.SHA256
    ecc.curveID = TPM2_ECC.NIST_P256
    ecc.kdf.scheme = TPM2_ALG.NULL
    public.unique.ecc.x = TPM2B_ECC_PARAMETER(unique)
    return TPM2B_PUBLIC(public)


def run_seal_unseal(session: DeviceSession) -> bool:
    """Seal a secret in a primary object and unseal it again."""
    tpm = session.tpm
    sensitive = TPM2B_SENSITIVE_CREATE(
        TPMS_SENSITIVE_CREATE(
            userAuth=TPM2B_AUTH(SEAL_AUTH),
            data=TPM2B_SENSITIVE_DATA(SEAL_SECRET),
        )
    )
    handle, _, _, _, _ = tpm.create_primary(sensitive, seal_template(), ESYS_TR.OWNER)

    with transient_object(session, handle):
        tpm.tr_set_auth(handle, SEAL_AUTH)
        data = tpm.unseal(handle)

        if bytes(data) != SEAL_SECRET:
            logger.error("Unsealed incorrect data")
            return False

    return True


def run_pcr_extend(session: DeviceSession) -> bool:
    """Extend PCR 0 with a fixed event."""
    session.tpm.pcr_event(ESYS_TR.PCR0, PCR_MEASUREMENT)
    return True


def _create_sign_verify(session: DeviceSession, template: TPM2B_PUBLIC) -> bool:
    tpm = session.tpm
    handle, _, _, _, _ = tpm.create_primary(TPM2B_SENSITIVE_CREATE(), template, ESYS_TR.OWNER)

    with transient_object(session, handle):
        digest = TPM2B_DIGEST(ZERO_DIGEST)
        # NULL scheme: sign with the key's own scheme
        signature = tpm.sign(
            handle,
            digest,
            TPMT_SIG_SCHEME(scheme=TPM2_ALG.NULL),
            TPMT_TK_HASHCHECK(tag=TPM2_ST.HASHCHECK, hierarchy=TPM2_RH.NULL),
        )
        # Raises on a bad signature.
        tpm.verify_signature(handle, digest, signature)

    return True


def run_rsa_2048(session: DeviceSession) -> bool:
    """Create an RSA-2048 key, sign a digest and verify the signature."""
    unique = bytes(session.tpm.get_random(RANDOM_SEED_BYTES))
    return _create_sign_verify(session, rsa_2048_template(unique))


def run_ecc_p256(session: DeviceSession) -> bool:
    """Create a P-256 key, sign a digest and verify the signature."""
    unique = bytes(session.tpm.get_random(RANDOM_SEED_BYTES))
    return _create_sign_verify(session, ecc_p256_template(unique))
