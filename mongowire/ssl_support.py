# Copyright 2024-present MongoDB, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Support for TLS in mongowire."""
from __future__ import annotations

import ssl
from ssl import CERT_NONE, CERT_REQUIRED
from typing import Optional

from mongowire.errors import ConfigurationError

SSLError = ssl.SSLError


def get_ssl_context(
    certfile: Optional[str],
    ca_certs: Optional[str],
    allow_invalid_certificates: bool,
    allow_invalid_hostnames: bool,
) -> ssl.SSLContext:
    """Create and return an SSLContext object."""
    verify_mode = CERT_NONE if allow_invalid_certificates else CERT_REQUIRED
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if verify_mode != CERT_NONE:
        ctx.check_hostname = not allow_invalid_hostnames
    else:
        ctx.check_hostname = False
    # Explicitly disable TLS compression and renegotiation.
    ctx.options |= ssl.OP_NO_COMPRESSION
    ctx.options |= ssl.OP_NO_RENEGOTIATION
    if certfile is not None:
        try:
            ctx.load_cert_chain(certfile)
        except ssl.SSLError as exc:
            raise ConfigurationError(f"Private key doesn't match certificate: {exc}") from None
    if ca_certs is not None:
        ctx.load_verify_locations(ca_certs)
    elif verify_mode != CERT_NONE:
        ctx.load_default_certs()
    ctx.verify_mode = verify_mode
    return ctx
