"""Pure domain layer: value types, clock, date windows and the recovery waterfall."""
