"""たすきゃっちゃー API"""
