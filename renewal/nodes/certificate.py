"""
certificate_issuer node — issuance followed by the bundle write.

generate_certificate:     fresh EC P-256 key, CSR with the configured subject,
                           finalize and download through the engine.
write_certificate_bundle: PKCS#12 bundle named after the domain, written over
                           any previous bundle at <CERTIFICATE_PATH>/<domain>.pfx.

The two steps share one node so the private key never enters graph state.
"""
from __future__ import annotations

import logging
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import ec
from langchain_core.runnables import RunnableConfig

from acme_client.crypto import generate_ec_key
from acme_client.engine import AcmeEngine
from acme_client.models import CertificateHandle, OrderHandle, SubjectInfo
from config import Settings
from renewal.context import get_context
from renewal.nodes.inspector import NOT_AFTER_FORMAT
from renewal.state import RenewalState
from storage import bundle

logger = logging.getLogger(__name__)


def subject_from_settings(settings: Settings) -> SubjectInfo:
    return SubjectInfo(
        common_name=settings.DOMAIN,
        country=settings.CERT_COUNTRY,
        state=settings.CERT_STATE,
        locality=settings.CERT_LOCALITY,
        organization=settings.CERT_ORGANISATION,
        unit=settings.CERT_ORGANISATION_UNIT,
    )


def generate_certificate(
    order: OrderHandle, engine: AcmeEngine, settings: Settings
) -> tuple[CertificateHandle, ec.EllipticCurvePrivateKey]:
    logger.info(" 7. Generating Certificate...")
    private_key = generate_ec_key()
    certificate = engine.generate_certificate(order, subject_from_settings(settings), private_key)
    return certificate, private_key


def write_certificate_bundle(
    certificate: CertificateHandle,
    private_key: ec.EllipticCurvePrivateKey,
    engine: AcmeEngine,
    settings: Settings,
) -> Path:
    logger.info(" 8. Building PFX...")
    data = engine.encode_bundle(certificate, private_key, settings.DOMAIN, settings.CERTIFICATE_PASSWORD)
    path = bundle.bundle_path(settings.CERTIFICATE_PATH, settings.DOMAIN)
    return bundle.write_bundle(path, data)


def certificate_issuer(state: RenewalState, config: RunnableConfig) -> dict:
    ctx = get_context(config)
    certificate, private_key = generate_certificate(state["order"], ctx.engine, ctx.settings)
    path = write_certificate_bundle(certificate, private_key, ctx.engine, ctx.settings)

    issued_not_after = ""
    issued_cn = ""
    if certificate.certificates:
        issued_not_after = bundle.not_after(certificate.leaf).strftime(NOT_AFTER_FORMAT)
        issued_cn = bundle.common_name(certificate.leaf)
    logger.info(
        "Stored certificate bundle %s for CN=%s (expires %s)", path, issued_cn or "?", issued_not_after or "?"
    )

    return {"bundle_path": str(path), "issued_not_after": issued_not_after, "renewed": True}
