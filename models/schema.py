# Centralized collection names to prevent drift.

# Cache entries: calculation_cache/{sha256(key)}
COL_CALCULATION_CACHE = "calculation_cache"

# Health probe reads a fixed doc: system/healthz
COL_SYSTEM = "system"
DOC_HEALTHZ = "healthz"

# Cache key prefixes (callers build keys as prefix + suffix)
PREFIX_DRUG_NORM = "drug:norm:"
PREFIX_RXCUI_DETAILS = "rxcui:details:"
PREFIX_NDC_LOOKUP = "ndc:lookup:"
