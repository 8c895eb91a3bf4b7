"""HTTP surface: listing, detail and download proxy."""
