"""Pure domain values: clock and DTOs. No I/O."""
