"""CodeShield - compliance-aware secure coding knowledge pipeline."""
