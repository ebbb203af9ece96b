"""Storage gateway for client case documents."""
