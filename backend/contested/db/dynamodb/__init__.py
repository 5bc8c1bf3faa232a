"""DynamoDB single-table access.

- boto3 client/resource configuration
- retry/backoff with errors mapped to a small typed hierarchy
- encrypted cursor tokens for query pagination
- float/Decimal conversion at the table boundary
- transactional writes used by multi-item operations (bundles, offers)
"""
