"""
ストア層

各関数は呼び出し側から Session を受け取り、commit は呼び出し側が行う。
テナントは company_id 引数で明示的に渡す（NULL = レガシーのグローバル設定）。
"""
