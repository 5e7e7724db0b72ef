"""
タスク抽出

メッセージ中のタグ（【緊急】【依頼】【確認】）でタスクかどうかを判定する。
ルールは上から順に評価し、最初にマッチしたものを採用する。
行頭である必要はない（「お疲れ様です【依頼】…」もタスク）。

使用例:
    from taskcatcher.extractor import analyze_message

    analysis = analyze_message("【確認】スケジュールを確認してください")
    analysis.is_task       # True
    analysis.task_content  # "スケジュールを確認してください"
    analysis.priority      # "low"
"""

import re
from dataclasses import dataclass
from typing import Pattern, Tuple


@dataclass(frozen=True)
class TaskAnalysis:
    is_task: bool
    task_content: str
    priority: str


# (パターン, 優先度) の順序が優先順位
# タスク内容は行終端文字（\r, \u2028, \u2029 を含む）をまたがない
RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"【緊急】([^\n\r\u2028\u2029]+?)(?:\n|$)"), "high"),
    (re.compile(r"【依頼】([^\n\r\u2028\u2029]+?)(?:\n|$)"), "medium"),
    (re.compile(r"【確認】([^\n\r\u2028\u2029]+?)(?:\n|$)"), "low"),
)

NOT_A_TASK = TaskAnalysis(is_task=False, task_content="", priority="medium")


def analyze_message(text: str) -> TaskAnalysis:
    """
    メッセージを解析してタスク情報を返す

    タグの後ろから改行（または末尾）までがタスク内容。
    タグの直後が改行の場合はマッチしない。
    """
    if not text:
        return NOT_A_TASK

    for pattern, priority in RULES:
        match = pattern.search(text)
        if match:
            return TaskAnalysis(
                is_task=True,
                task_content=match.group(1).strip(),
                priority=priority,
            )

    return NOT_A_TASK
