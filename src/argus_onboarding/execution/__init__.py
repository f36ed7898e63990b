"""Adapters for the external collaborators: AWS, Terraform and the network."""
