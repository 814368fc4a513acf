"""HTTP quote service over a deployed engine."""
