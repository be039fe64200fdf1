"""Target-cluster side: mirrored object records and the Kubernetes REST client."""
