"""
Byte&Battle backend package.

Provides the async service layer (auth, problems, submissions, contests,
realtime subscriptions, avatar storage), the remote code-execution
aggregator, a FastAPI application and a judge worker.
"""
