"""SPS30 serial driver."""
