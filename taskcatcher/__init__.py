"""
たすきゃっちゃー 共通ライブラリ

チャットツール（Chatwork / Teams / Lark / Slack / LINE）のWebhookから
【緊急】【依頼】【確認】タグ付きメッセージを検出し、タスクとして登録する。

Webhookルート（api/）とテストはこのパッケージのみを参照する。
"""

__version__ = "1.0.0"
