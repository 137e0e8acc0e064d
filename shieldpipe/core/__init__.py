"""Pure transfer logic: chains, fees, invariants and the submission pipeline."""
