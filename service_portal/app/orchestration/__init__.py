"""
Chat answer orchestration: prompt construction, provider fallback and
HTML rendering of the final answer.
"""
