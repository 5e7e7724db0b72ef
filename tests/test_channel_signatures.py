"""
Webhook署名検証のテスト

各プラットフォームについて、同じアルゴリズムで作った署名は通り、
ボディまたは署名を1バイト変えると通らないことを確認する。
"""

import base64
import hashlib
import hmac
import time

import pytest

from taskcatcher.channels.chatwork import verify_chatwork_signature
from taskcatcher.channels.lark import verify_lark_signature, verify_lark_token
from taskcatcher.channels.line import verify_line_signature
from taskcatcher.channels.slack import MAX_TIMESTAMP_AGE_SECONDS, verify_slack_signature
from taskcatcher.channels.teams import verify_teams_signature

BODY = b'{"webhook_event_type":"message_created","webhook_event":{"room_id":1}}'


def _flip_byte(data: bytes, index: int = 0) -> bytes:
    return data[:index] + bytes([data[index] ^ 0x01]) + data[index + 1:]


def _flip_char(value: str, index: int = 0) -> str:
    replacement = "B" if value[index] != "B" else "C"
    return value[:index] + replacement + value[index + 1:]


def _hmac_b64(key: bytes, body: bytes) -> str:
    return base64.b64encode(hmac.new(key, body, hashlib.sha256).digest()).decode()


class TestChatworkSignature:
    """Chatwork: Base64(HMAC-SHA256(base64decode(token), body))"""

    TOKEN = base64.b64encode(b"chatwork-secret-key").decode()

    def _sign(self, body: bytes) -> str:
        return _hmac_b64(b"chatwork-secret-key", body)

    def test_valid_signature(self):
        assert verify_chatwork_signature(BODY, self._sign(BODY), self.TOKEN) is True

    def test_tampered_body(self):
        assert verify_chatwork_signature(_flip_byte(BODY, 5), self._sign(BODY), self.TOKEN) is False

    def test_tampered_signature(self):
        assert verify_chatwork_signature(BODY, _flip_char(self._sign(BODY), 3), self.TOKEN) is False

    def test_token_without_padding(self):
        """パディングが欠けたトークンも受け付ける"""
        token = self.TOKEN.rstrip("=")
        assert verify_chatwork_signature(BODY, self._sign(BODY), token) is True

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature(self, signature):
        assert verify_chatwork_signature(BODY, signature, self.TOKEN) is False

    def test_missing_token(self):
        assert verify_chatwork_signature(BODY, self._sign(BODY), "") is False


class TestTeamsSignature:
    """Teams: Authorization: HMAC <Base64(HMAC-SHA256(base64decode(secret), body))>"""

    SECRET = base64.b64encode(b"teams-secret").decode()

    def _header(self, body: bytes) -> str:
        return "HMAC " + _hmac_b64(b"teams-secret", body)

    def test_valid_signature(self):
        assert verify_teams_signature(BODY, self._header(BODY), self.SECRET) is True

    def test_scheme_is_case_insensitive(self):
        header = self._header(BODY).replace("HMAC", "hmac")
        assert verify_teams_signature(BODY, header, self.SECRET) is True

    def test_tampered_body(self):
        assert verify_teams_signature(_flip_byte(BODY, 10), self._header(BODY), self.SECRET) is False

    def test_tampered_signature(self):
        header = self._header(BODY)
        assert verify_teams_signature(BODY, header[:5] + _flip_char(header[5:]), self.SECRET) is False

    @pytest.mark.parametrize("header", [None, "", "Bearer abc", "HMAC"])
    def test_malformed_header(self, header):
        assert verify_teams_signature(BODY, header, self.SECRET) is False


class TestLineSignature:
    """LINE: Base64(HMAC-SHA256(channel_secret, body))"""

    SECRET = "line-channel-secret"

    def _sign(self, body: bytes) -> str:
        return _hmac_b64(self.SECRET.encode(), body)

    def test_valid_signature(self):
        assert verify_line_signature(BODY, self._sign(BODY), self.SECRET) is True

    def test_tampered_body(self):
        assert verify_line_signature(_flip_byte(BODY, 0), self._sign(BODY), self.SECRET) is False

    def test_tampered_signature(self):
        assert verify_line_signature(BODY, _flip_char(self._sign(BODY), 7), self.SECRET) is False

    def test_missing_secret(self):
        assert verify_line_signature(BODY, self._sign(BODY), "") is False


class TestSlackSignature:
    """Slack: v0=hex(HMAC-SHA256(secret, "v0:{ts}:{body}"))"""

    SECRET = "slack-signing-secret"

    @pytest.fixture(autouse=True)
    def _set_timestamp(self):
        self.TIMESTAMP = str(int(time.time()))

    def _sign(self, body: bytes, timestamp: str) -> str:
        base = b"v0:" + timestamp.encode() + b":" + body
        return "v0=" + hmac.new(self.SECRET.encode(), base, hashlib.sha256).hexdigest()

    def test_valid_signature(self):
        sig = self._sign(BODY, self.TIMESTAMP)
        assert verify_slack_signature(self.SECRET, sig, self.TIMESTAMP, BODY) is True

    def test_tampered_body(self):
        sig = self._sign(BODY, self.TIMESTAMP)
        assert verify_slack_signature(self.SECRET, sig, self.TIMESTAMP, _flip_byte(BODY, 3)) is False

    def test_tampered_signature(self):
        sig = self._sign(BODY, self.TIMESTAMP)
        tampered = sig[:-1] + ("0" if sig[-1] != "0" else "1")
        assert verify_slack_signature(self.SECRET, tampered, self.TIMESTAMP, BODY) is False

    def test_stale_timestamp(self):
        """5分より古いリクエストは正しい署名でも拒否"""
        old_ts = str(int(time.time()) - MAX_TIMESTAMP_AGE_SECONDS - 1)
        sig = self._sign(BODY, old_ts)
        assert verify_slack_signature(self.SECRET, sig, old_ts, BODY) is False

    def test_timestamp_within_window(self):
        now = 1_700_000_000
        ts = str(now - MAX_TIMESTAMP_AGE_SECONDS)
        sig = self._sign(BODY, ts)
        assert verify_slack_signature(self.SECRET, sig, ts, BODY, now=now) is True

    def test_non_numeric_timestamp(self):
        sig = self._sign(BODY, "abc")
        assert verify_slack_signature(self.SECRET, sig, "abc", BODY) is False

    def test_length_mismatch(self):
        assert verify_slack_signature(self.SECRET, "v0=short", self.TIMESTAMP, BODY) is False


class TestLarkSignature:
    """Lark: hex(SHA-256(timestamp + nonce + encrypt_key + body))"""

    KEY = "lark-encrypt-key"
    TIMESTAMP = "1700000000"
    NONCE = "nonce-123"

    def _sign(self, body: bytes) -> str:
        content = self.TIMESTAMP.encode() + self.NONCE.encode() + self.KEY.encode() + body
        return hashlib.sha256(content).hexdigest()

    def test_valid_signature(self):
        assert verify_lark_signature(self.TIMESTAMP, self.NONCE, BODY, self._sign(BODY), self.KEY) is True

    def test_tampered_body(self):
        assert verify_lark_signature(
            self.TIMESTAMP, self.NONCE, _flip_byte(BODY, 8), self._sign(BODY), self.KEY
        ) is False

    def test_tampered_signature(self):
        sig = self._sign(BODY)
        tampered = ("0" if sig[0] != "0" else "1") + sig[1:]
        assert verify_lark_signature(self.TIMESTAMP, self.NONCE, BODY, tampered, self.KEY) is False

    def test_wrong_nonce(self):
        assert verify_lark_signature(self.TIMESTAMP, "other", BODY, self._sign(BODY), self.KEY) is False


class TestLarkToken:
    """Verification Token の検証"""

    def test_header_token(self):
        assert verify_lark_token({"header": {"token": "tok"}}, "tok") is True

    def test_top_level_token(self):
        """チャレンジはトップレベルの token"""
        assert verify_lark_token({"token": "tok", "type": "url_verification"}, "tok") is True

    def test_header_takes_precedence(self):
        assert verify_lark_token({"header": {"token": "wrong"}, "token": "tok"}, "tok") is False

    def test_missing_token(self):
        assert verify_lark_token({"event": {}}, "tok") is False

    def test_mismatch(self):
        assert verify_lark_token({"header": {"token": "tok"}}, "tok2") is False
