"""
チャネル（プラットフォーム）別の Webhook 処理

各モジュールは署名検証（verify_*）、正規化（parse_*）、
チャレンジ判定（is_challenge: Lark / Slack のみ）を関数として公開する。
"""

from taskcatcher.channels.base import NormalizedMessage

__all__ = ["NormalizedMessage"]
