"""
Webhookルートのテスト（TestClient + インメモリSQLite）

POST /webhook/chatwork/{token}, /webhook/chatwork
POST /webhook/teams/{token}
POST /webhook/lark
POST /webhook/slack
POST /webhook/line/{token}
"""

import base64
import hashlib
import hmac
import json
import os
import time

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from taskcatcher.db import session_scope
from taskcatcher.store import rooms, settings, tasks

TENANT_TOKEN = "tenant-a-webhook-token"
OTHER_TENANT_TOKEN = "tenant-b-webhook-token"
CHATWORK_TOKEN = "dGVzdC1jaGF0d29yay1rZXk="
TEAMS_SECRET = "dGVzdC10ZWFtcy1zZWNyZXQ="
LINE_SECRET = "line-channel-secret"
LARK_TOKEN = "lark-verification-token"
LARK_KEY = "lark-encrypt-key"
SLACK_SECRET = "slack-signing-secret"


def _body(payload) -> bytes:
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def _b64_hmac(key: bytes, body: bytes) -> str:
    return base64.b64encode(hmac.new(key, body, hashlib.sha256).digest()).decode()


def _all_tasks():
    with session_scope() as session:
        return [t.to_dict() for t in tasks.list_tasks(session, None, all_tenants=True)]


def _add_room(source, room_id, company_id, is_active=True, workspace_id=None):
    with session_scope() as session:
        rooms.upsert_room(session, source, room_id, company_id, is_active=is_active, workspace_id=workspace_id)


# ================================================================
# Chatwork
# ================================================================


def _chatwork_payload(body="【確認】check the schedule", message_id="456", event_type="message_created"):
    return {
        "webhook_setting_id": "1",
        "webhook_event_type": event_type,
        "webhook_event_time": 1700000000,
        "webhook_event": {
            "message_id": message_id,
            "room_id": 123,
            "account_id": 789,
            "body": body,
            "send_time": 1700000000,
            "update_time": 0,
        },
    }


def _post_chatwork(client, payload, url=f"/webhook/chatwork/{TENANT_TOKEN}", token=CHATWORK_TOKEN, signature=None):
    body = payload if isinstance(payload, bytes) else _body(payload)
    if signature is None:
        signature = _b64_hmac(base64.b64decode(token), body)
    return client.post(url, content=body, headers={"X-ChatWorkWebhookSignature": signature})


class TestChatworkWebhook:
    def test_creates_task(self, client, seed, mock_notifications):
        _add_room("chatwork", "123", seed["company_a"])

        response = _post_chatwork(client, _chatwork_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert isinstance(data["taskId"], int)

        created = _all_tasks()
        assert len(created) == 1
        assert created[0]["content"] == "check the schedule"
        assert created[0]["priority"] == "low"
        assert created[0]["sender_name"] == "User 789"
        assert created[0]["company_id"] == seed["company_a"]
        mock_notifications["ingestion"].assert_called_once()

    def test_duplicate_delivery(self, client, seed):
        _add_room("chatwork", "123", seed["company_a"])
        first = _post_chatwork(client, _chatwork_payload())
        second = _post_chatwork(client, _chatwork_payload())

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"success": True, "message": "Duplicate message"}
        assert len(_all_tasks()) == 1

    def test_room_not_monitored(self, client, seed):
        response = _post_chatwork(client, _chatwork_payload())
        assert response.json() == {"success": True, "message": "Room not monitored"}
        assert _all_tasks() == []

    def test_not_a_task(self, client, seed):
        _add_room("chatwork", "123", seed["company_a"])
        response = _post_chatwork(client, _chatwork_payload(body="hello"))
        assert response.json() == {"success": True, "message": "Message is not a task"}

    def test_other_event_type(self, client, seed):
        response = _post_chatwork(client, _chatwork_payload(event_type="mention_to_me"))
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_invalid_signature(self, client, seed):
        _add_room("chatwork", "123", seed["company_a"])
        response = _post_chatwork(client, _chatwork_payload(), signature="invalid")
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}
        assert _all_tasks() == []

    def test_unknown_tenant_token(self, client, seed):
        response = _post_chatwork(client, _chatwork_payload(), url="/webhook/chatwork/unknown-token")
        assert response.status_code == 404

    def test_tenant_without_configuration(self, client, seed):
        response = _post_chatwork(client, _chatwork_payload(), url=f"/webhook/chatwork/{OTHER_TENANT_TOKEN}")
        assert response.status_code == 400
        assert response.json() == {"error": "Webhook not configured"}

    def test_invalid_json(self, client, seed):
        response = _post_chatwork(client, b"not json")
        assert response.status_code == 400

    def test_legacy_route(self, client, db_engine, mock_notifications):
        with session_scope() as session:
            settings.upsert_company_settings(session, None, chatwork_webhook_token=CHATWORK_TOKEN)
            rooms.upsert_room(session, "chatwork", "123", None)

        response = _post_chatwork(client, _chatwork_payload(), url="/webhook/chatwork")

        assert response.status_code == 200
        assert response.json()["success"] is True
        created = _all_tasks()
        assert len(created) == 1
        assert created[0]["company_id"] is None


# ================================================================
# Teams
# ================================================================


def _teams_activity(text="<at>TaskBot</at> 【依頼】見積もり作成", activity_id="t-1"):
    return {
        "type": "message",
        "id": activity_id,
        "text": text,
        "from": {"id": "29:user", "name": "山田"},
        "conversation": {"id": "19:abc@thread.tacv2;messageid=1"},
        "serviceUrl": "https://smba.trafficmanager.net/apac/",
    }


def _post_teams(client, payload, token=TENANT_TOKEN, secret=TEAMS_SECRET, auth=None):
    body = _body(payload)
    if auth is None:
        auth = "HMAC " + _b64_hmac(base64.b64decode(secret), body)
    return client.post(f"/webhook/teams/{token}", content=body, headers={"Authorization": auth})


class TestTeamsWebhook:
    def test_creates_task_and_replies(self, client, seed):
        _add_room("teams", "19:abc@thread.tacv2", seed["company_a"])

        response = _post_teams(client, _teams_activity())

        assert response.status_code == 200
        assert response.json() == {
            "type": "message",
            "text": "タスクの登録が完了しました。\nhttps://dashboard.example.com/",
        }
        created = _all_tasks()
        assert created[0]["content"] == "見積もり作成"
        assert created[0]["sender_name"] == "山田"
        assert created[0]["service_url"] == "https://smba.trafficmanager.net/apac/"

    def test_tenant_dashboard_url(self, client, seed):
        _add_room("teams", "19:abc@thread.tacv2", seed["company_a"])
        with session_scope() as session:
            settings.upsert_company_settings(session, seed["company_a"], dashboard_url="https://a.example.com/")

        response = _post_teams(client, _teams_activity())
        assert response.json()["text"].endswith("https://a.example.com/")

    def test_not_a_task_replies_empty(self, client, seed):
        _add_room("teams", "19:abc@thread.tacv2", seed["company_a"])
        response = _post_teams(client, _teams_activity(text="こんにちは"))
        assert response.json() == {"type": "message", "text": ""}

    def test_not_monitored_replies_empty(self, client, seed):
        response = _post_teams(client, _teams_activity())
        assert response.json() == {"type": "message", "text": ""}

    def test_duplicate_replies_empty(self, client, seed):
        _add_room("teams", "19:abc@thread.tacv2", seed["company_a"])
        _post_teams(client, _teams_activity())
        response = _post_teams(client, _teams_activity())
        assert response.json()["text"] == ""
        assert len(_all_tasks()) == 1

    def test_invalid_signature(self, client, seed):
        response = _post_teams(client, _teams_activity(), auth="HMAC aW52YWxpZA==")
        assert response.status_code == 401

    def test_missing_secret(self, client, seed):
        response = _post_teams(client, _teams_activity(), token=OTHER_TENANT_TOKEN)
        assert response.status_code == 400


# ================================================================
# Lark
# ================================================================


def _lark_encrypt(payload: dict, key: str = LARK_KEY) -> str:
    aes_key = hashlib.sha256(key.encode()).digest()
    iv = os.urandom(16)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(_body(payload)) + padder.finalize()
    encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
    return base64.b64encode(iv + encryptor.update(padded) + encryptor.finalize()).decode()


def _lark_event(text="【緊急】サーバー復旧", token=LARK_TOKEN, chat_id="oc_1"):
    return {
        "schema": "2.0",
        "header": {"event_id": "e1", "event_type": "im.message.receive_v1", "token": token},
        "event": {
            "sender": {"sender_id": {"open_id": "ou_123"}, "sender_type": "user"},
            "message": {
                "message_id": "om_1",
                "chat_id": chat_id,
                "chat_type": "group",
                "message_type": "text",
                "content": json.dumps({"text": text}, ensure_ascii=False),
            },
        },
    }


class TestLarkWebhook:
    def test_plain_challenge_before_verification(self, client, db_engine):
        """設定が無くてもチャレンジには応答する"""
        response = client.post("/webhook/lark", json={"type": "url_verification", "challenge": "abc"})
        assert response.status_code == 200
        assert response.json() == {"challenge": "abc"}

    def test_encrypted_challenge(self, client, seed):
        encrypted = _lark_encrypt({"type": "url_verification", "challenge": "xyz", "token": LARK_TOKEN})
        response = client.post("/webhook/lark", json={"encrypt": encrypted})
        assert response.status_code == 200
        assert response.json() == {"challenge": "xyz"}

    def test_undecryptable_payload(self, client, seed):
        encrypted = _lark_encrypt({"type": "url_verification", "challenge": "xyz"}, key="other-key")
        response = client.post("/webhook/lark", json={"encrypt": encrypted})
        assert response.status_code == 400

    def test_creates_task(self, client, seed):
        _add_room("lark", "oc_1", seed["company_a"])

        response = client.post("/webhook/lark", json=_lark_event())

        assert response.status_code == 200
        assert response.json() == {"success": True}
        created = _all_tasks()
        assert len(created) == 1
        assert created[0]["priority"] == "high"
        assert created[0]["sender_name"] == "ou_123"
        assert created[0]["company_id"] == seed["company_a"]

    def test_encrypted_event_with_signature(self, client, seed):
        _add_room("lark", "oc_1", seed["company_a"])
        body = _body({"encrypt": _lark_encrypt(_lark_event())})
        timestamp, nonce = "1700000000", "n-1"
        signature = hashlib.sha256(timestamp.encode() + nonce.encode() + LARK_KEY.encode() + body).hexdigest()

        response = client.post(
            "/webhook/lark",
            content=body,
            headers={
                "X-Lark-Request-Timestamp": timestamp,
                "X-Lark-Request-Nonce": nonce,
                "X-Lark-Signature": signature,
            },
        )
        assert response.status_code == 200
        assert len(_all_tasks()) == 1

    def test_invalid_signature(self, client, seed):
        _add_room("lark", "oc_1", seed["company_a"])
        response = client.post(
            "/webhook/lark",
            json=_lark_event(),
            headers={"X-Lark-Request-Timestamp": "1", "X-Lark-Request-Nonce": "n", "X-Lark-Signature": "bad"},
        )
        assert response.status_code == 401
        assert _all_tasks() == []

    def test_invalid_token(self, client, seed):
        response = client.post("/webhook/lark", json=_lark_event(token="wrong"))
        assert response.status_code == 401

    def test_not_configured(self, client, db_engine):
        response = client.post("/webhook/lark", json=_lark_event())
        assert response.status_code == 400
        assert response.json() == {"error": "Webhook not configured"}

    def test_duplicate_event(self, client, seed):
        _add_room("lark", "oc_1", seed["company_a"])
        client.post("/webhook/lark", json=_lark_event())
        client.post("/webhook/lark", json=_lark_event())
        assert len(_all_tasks()) == 1


# ================================================================
# Slack
# ================================================================


def _slack_event(team_id="T1", text="【依頼】レビュー", ts="1700000000.000100"):
    return {
        "type": "event_callback",
        "team_id": team_id,
        "event": {"type": "message", "channel": "C1", "user": "U1", "text": text, "ts": ts},
    }


def _post_slack(client, payload, secret=SLACK_SECRET, timestamp=None):
    body = _body(payload)
    timestamp = timestamp or str(int(time.time()))
    base = b"v0:" + timestamp.encode() + b":" + body
    signature = "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    return client.post(
        "/webhook/slack",
        content=body,
        headers={"X-Slack-Request-Timestamp": timestamp, "X-Slack-Signature": signature},
    )


@pytest.fixture
def slack_workspace(seed):
    with session_scope() as session:
        settings.register_slack_workspace(session, seed["company_a"], "T1", SLACK_SECRET)
        rooms.upsert_room(session, "slack", "C1", seed["company_a"], workspace_id="T1")
    return seed


class TestSlackWebhook:
    def test_challenge_before_workspace_lookup(self, client, db_engine):
        response = client.post("/webhook/slack", json={"type": "url_verification", "challenge": "c-1"})
        assert response.json() == {"challenge": "c-1"}

    def test_missing_team_id(self, client, db_engine):
        response = client.post("/webhook/slack", json={"type": "event_callback", "event": {}})
        assert response.status_code == 400
        assert response.json() == {"error": "No team_id"}

    def test_unknown_workspace(self, client, slack_workspace):
        response = _post_slack(client, _slack_event(team_id="T999"))
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert _all_tasks() == []

    def test_creates_task(self, client, slack_workspace):
        response = _post_slack(client, _slack_event())
        assert response.json() == {"ok": True}
        created = _all_tasks()
        assert len(created) == 1
        assert created[0]["content"] == "レビュー"
        assert created[0]["sender_name"] == "U1"
        assert created[0]["company_id"] == slack_workspace["company_a"]

    def test_invalid_signature(self, client, slack_workspace):
        response = _post_slack(client, _slack_event(), secret="wrong")
        assert response.status_code == 401

    def test_stale_timestamp(self, client, slack_workspace):
        response = _post_slack(client, _slack_event(), timestamp=str(int(time.time()) - 600))
        assert response.status_code == 401


# ================================================================
# LINE
# ================================================================


def _post_line(client, events, token=TENANT_TOKEN, signature=None):
    body = _body({"destination": "U0", "events": events})
    if signature is None:
        signature = _b64_hmac(LINE_SECRET.encode(), body)
    return client.post(f"/webhook/line/{token}", content=body, headers={"X-Line-Signature": signature})


def _line_message(message_id="m1", text="【依頼】請求書送付", group_id="G1"):
    return {
        "type": "message",
        "replyToken": "r",
        "source": {"type": "group", "groupId": group_id, "userId": "U1"},
        "message": {"id": message_id, "type": "text", "text": text},
    }


class TestLineWebhook:
    def test_join_registers_pending_room(self, client, seed):
        response = _post_line(client, [{"type": "join", "source": {"type": "group", "groupId": "G1"}}])

        assert response.status_code == 200
        assert response.json() == {"success": True}
        with session_scope() as session:
            room = rooms.get_room(session, "line", "G1", seed["company_a"])
            assert room is not None
            assert room.is_active is False
            assert room.room_name == "G1"

    def test_pending_room_is_not_monitored(self, client, seed):
        _post_line(client, [{"type": "join", "source": {"type": "group", "groupId": "G1"}}])
        _post_line(client, [_line_message()])
        assert _all_tasks() == []

    def test_multiple_events(self, client, seed):
        _add_room("line", "G1", seed["company_a"])
        response = _post_line(client, [
            _line_message("m1"),
            _line_message("m2", text="雑談"),
            _line_message("m3", text="【緊急】至急確認"),
            {"type": "message", "source": {"type": "user", "userId": "U1"}, "message": {"id": "m4", "type": "text", "text": "【依頼】DM"}},
        ])
        assert response.status_code == 200
        assert sorted(t["message_id"] for t in _all_tasks()) == ["m1", "m3"]

    def test_invalid_signature(self, client, seed):
        response = _post_line(client, [_line_message()], signature="invalid")
        assert response.status_code == 401

    def test_missing_secret(self, client, seed):
        response = _post_line(client, [_line_message()], token=OTHER_TENANT_TOKEN)
        assert response.status_code == 400
