"""Application workflows built on the domain and runtime layers."""
