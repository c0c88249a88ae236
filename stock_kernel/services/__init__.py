"""Write-side services.  Flush only; callers own the transaction."""
