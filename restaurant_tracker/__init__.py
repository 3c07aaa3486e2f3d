"""
Restaurant tracker backend.

This package provides a FastAPI application over a single DynamoDB table,
plus the Cognito custom-auth triggers that implement passwordless email login.
"""
