"""Network, device and browser-focus signal adapters."""
