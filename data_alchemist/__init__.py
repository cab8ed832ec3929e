"""data-alchemist: normalize, validate and correct clients / workers / tasks tables."""
