"""Environment attribute providers used for anonymous fingerprinting."""
