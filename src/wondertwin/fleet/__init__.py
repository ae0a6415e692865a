"""Fleet control: manifest, process supervisor, and the admin HTTP client."""
