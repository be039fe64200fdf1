"""Mirror load balancers discovered in a backend into Kubernetes Services and Endpoints."""

__version__ = "0.1.0"
