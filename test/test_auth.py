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

"""SCRAM computations used by the authentication handshake."""
from __future__ import annotations

import sys

sys.path[0:0] = [""]

import unittest
from base64 import standard_b64encode

from mongowire.auth_shared import (
    _authenticate_scram_start,
    _build_credentials_tuple,
    _Cache,
    _parse_scram_response,
    _scram_client_final,
    _verify_server_signature,
    _xor,
)
from mongowire.errors import AuthenticationError, ConfigurationError

# RFC 7677, section 3.
_NONCE = b"rOprNGfwEbeRWgbNEkqO"
_SERVER_FIRST = (
    b"r=rOprNGfwEbeRWgbNEkqO%hvYDpWUa2RaTCAfuxFIlj)hNlF$k0,"
    b"s=W22ZaJ0SNY7soEsUEjb6gQ==,i=4096"
)
_CLIENT_FINAL = (
    b"c=biws,r=rOprNGfwEbeRWgbNEkqO%hvYDpWUa2RaTCAfuxFIlj)hNlF$k0,"
    b"p=dHzbZapWIk4jUhN+Ute9ytag9zjfMHgsqmmiz7AndVQ="
)
_SERVER_SIG = b"6rriTRBi23WpRR/wtup+mMhUZUn/dB5nLTJRsjl95G4="


def _creds(user="user", password="pencil"):
    return _build_credentials_tuple("SCRAM-SHA-256", None, user, password, {}, None)


class TestScramSha256(unittest.TestCase):
    def test_client_first(self):
        nonce, first_bare, cmd = _authenticate_scram_start(_creds(), "SCRAM-SHA-256", _NONCE)
        self.assertEqual(_NONCE, nonce)
        self.assertEqual(b"n=user,r=" + _NONCE, first_bare)
        self.assertEqual(1, cmd["saslStart"])
        self.assertEqual("SCRAM-SHA-256", cmd["mechanism"])
        self.assertEqual(b"n,," + first_bare, bytes(cmd["payload"]))
        self.assertEqual({"skipEmptyExchange": True}, cmd["options"])

    def test_random_nonce(self):
        nonce1, _, _ = _authenticate_scram_start(_creds(), "SCRAM-SHA-256")
        nonce2, _, _ = _authenticate_scram_start(_creds(), "SCRAM-SHA-256")
        self.assertNotEqual(nonce1, nonce2)

    def test_username_escaping(self):
        _, first_bare, _ = _authenticate_scram_start(_creds("a=b,c"), "SCRAM-SHA-256", _NONCE)
        self.assertEqual(b"n=a=3Db=2Cc,r=" + _NONCE, first_bare)

    def test_rfc7677_vectors(self):
        creds = _creds()
        _, first_bare, _ = _authenticate_scram_start(creds, "SCRAM-SHA-256", _NONCE)
        client_final, server_sig = _scram_client_final(
            creds, "SCRAM-SHA-256", _NONCE, first_bare, _SERVER_FIRST
        )
        self.assertEqual(_CLIENT_FINAL, client_final)
        self.assertEqual(_SERVER_SIG, server_sig)
        _verify_server_signature(b"v=" + _SERVER_SIG, server_sig)

    def test_keys_are_cached(self):
        creds = _creds()
        self.assertIsNone(creds.cache.data)
        _, first_bare, _ = _authenticate_scram_start(creds, "SCRAM-SHA-256", _NONCE)
        _scram_client_final(creds, "SCRAM-SHA-256", _NONCE, first_bare, _SERVER_FIRST)
        client_key, server_key, salt, iterations = creds.cache.data
        self.assertEqual(b"W22ZaJ0SNY7soEsUEjb6gQ==", salt)
        self.assertEqual(4096, iterations)
        # A second conversation reuses the keys and yields the same proof.
        client_final, _ = _scram_client_final(
            creds, "SCRAM-SHA-256", _NONCE, first_bare, _SERVER_FIRST
        )
        self.assertEqual(_CLIENT_FINAL, client_final)

    def test_low_iteration_count(self):
        server_first = _SERVER_FIRST.replace(b"i=4096", b"i=4095")
        with self.assertRaisesRegex(AuthenticationError, "iteration count"):
            _scram_client_final(_creds(), "SCRAM-SHA-256", _NONCE, b"", server_first)

    def test_nonce_mismatch(self):
        with self.assertRaisesRegex(AuthenticationError, "nonce"):
            _scram_client_final(_creds(), "SCRAM-SHA-256", b"other", b"", _SERVER_FIRST)

    def test_bad_server_signature(self):
        with self.assertRaisesRegex(AuthenticationError, "signature"):
            _verify_server_signature(b"v=" + standard_b64encode(b"x" * 32), _SERVER_SIG)
        with self.assertRaisesRegex(AuthenticationError, "signature"):
            _verify_server_signature(b"x=1", _SERVER_SIG)

    def test_server_error(self):
        with self.assertRaisesRegex(AuthenticationError, "invalid-proof"):
            _verify_server_signature(b"e=invalid-proof", _SERVER_SIG)


class TestHelpers(unittest.TestCase):
    def test_parse_scram_response(self):
        self.assertEqual(
            {b"r": b"abc", b"s": b"c2FsdA==", b"i": b"4096"},
            _parse_scram_response(b"r=abc,s=c2FsdA==,i=4096"),
        )

    def test_xor(self):
        self.assertEqual(b"\x00\xff", _xor(b"\x0f\xf0", b"\x0f\x0f"))

    def test_cache_equality(self):
        self.assertEqual(_Cache(), _Cache())
        self.assertEqual(hash(_Cache()), hash(_Cache()))
        self.assertEqual(_creds(), _creds())

    def test_build_credentials(self):
        creds = _build_credentials_tuple("DEFAULT", None, "u", "p", {}, "db")
        self.assertEqual("db", creds.source)
        creds = _build_credentials_tuple("DEFAULT", "src", "u", "p", {}, "db")
        self.assertEqual("src", creds.source)
        self.assertRaises(
            ConfigurationError, _build_credentials_tuple, "PLAIN", None, "u", "p", {}, None
        )
        self.assertRaises(
            ConfigurationError, _build_credentials_tuple, "DEFAULT", None, None, "p", {}, None
        )
        self.assertRaises(
            ConfigurationError, _build_credentials_tuple, "DEFAULT", None, "u", None, {}, None
        )


if __name__ == "__main__":
    unittest.main()
