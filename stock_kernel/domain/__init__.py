"""Pure domain values: identities, DTOs and clocks.  No I/O."""
