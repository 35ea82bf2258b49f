"""
Portal domain: table schemas, records, repositories and the workflows
built on them.
"""
