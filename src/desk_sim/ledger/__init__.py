"""Position and history ledgers."""
