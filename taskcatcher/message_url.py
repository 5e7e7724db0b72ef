"""
元メッセージへのリンク生成

ダッシュボードのタスク一覧から、各チャットツールの元メッセージを開くためのURL。
生成できない場合（Teams で serviceUrl 未保存、LINE）は None。
"""

from typing import Optional

MESSAGE_URL_LABELS = {
    "chatwork": "Chatworkでメッセージを開く",
    "slack": "Slackでメッセージを開く",
    "teams": "Teamsで会話を開く",
    "lark": "Larkでチャットを開く",
}


def generate_message_url(
    source: str,
    room_id: str,
    message_id: str,
    service_url: Optional[str] = None,
) -> Optional[str]:
    if source == "chatwork":
        return f"https://www.chatwork.com/#!rid{room_id}-{message_id}"

    if source == "slack":
        # ts "1700000000.123456" -> "p1700000000123456"
        return f"https://app.slack.com/archives/{room_id}/p{message_id.replace('.', '', 1)}"

    if source == "teams":
        if not service_url:
            return None
        base = service_url if service_url.endswith("/") else service_url + "/"
        return f"{base}conversations/{room_id}?messageId={message_id}"

    if source == "lark":
        # メッセージ単位のリンクは無いため、チャットを開く
        return f"https://applink.larksuite.com/client/chat/open?openChatId={room_id}"

    return None


def get_message_url_label(source: str) -> str:
    return MESSAGE_URL_LABELS.get(source, "メッセージを開く")
