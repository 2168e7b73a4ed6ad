"""
tf_graphx.ingestion — Plan document acquisition and parsing.

Modules:
    plan_parser       — `terraform show -json` document → typed module trees.
    terraform_runner  — thin subprocess boundary around the terraform binary.
"""
