"""awsops - AWS operational primitives exposed as declarative resources.

Provides:
    - SSM command dispatch with bounded polling and final status resolution
    - SSM file deployment (bash / PowerShell)
    - Step Functions synchronous execution
    - CodeBuild build triggering
    - SSM hybrid activation lifecycle with Secrets Manager storage
"""

__version__ = "0.1.0"
