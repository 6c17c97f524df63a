"""Command line tool for running gitops-deploy against a cluster."""
