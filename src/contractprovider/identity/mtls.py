# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Mutual TLS Client Context

Builds the SSL context the repository client presents: the provider's
PKI-issued certificate and key, verifying the server against the system
trust roots (and optionally an extra CA bundle).
"""

import os
import ssl
import tempfile
from typing import Optional

from .identity import Identity


def create_client_ssl_context(
    identity: Identity,
    ca_bundle_path: Optional[str] = None,
) -> ssl.SSLContext:
    """Create a client-side SSL context carrying the provider identity.

    Args:
        identity: Identity whose certificate and key are presented.
        ca_bundle_path: Optional extra PEM bundle for server verification.

    Returns:
        A configured ssl.SSLContext.
    """
    ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2

    # load_cert_chain only accepts paths
    cert_file = key_file = None
    try:
        with tempfile.NamedTemporaryFile(delete=False, suffix=".pem", mode="wb") as cf:
            cf.write(identity.certificate_pem)
            cert_file = cf.name
        with tempfile.NamedTemporaryFile(delete=False, suffix=".pem", mode="wb") as kf:
            kf.write(identity.private_key_pem)
            key_file = kf.name
        ctx.load_cert_chain(cert_file, key_file)
    finally:
        if cert_file:
            os.unlink(cert_file)
        if key_file:
            os.unlink(key_file)

    if ca_bundle_path:
        ctx.load_verify_locations(ca_bundle_path)

    return ctx
