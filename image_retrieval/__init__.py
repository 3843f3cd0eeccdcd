"""
image_retrieval — Content-based image retrieval by linear scan.

Ranks a directory of candidate images against a query image using one of
several interchangeable feature schemes, each paired with a distance
metric tuned to its layout.

Modules:
    schemes        Scheme selector + extractor/metric pairing
    histograms     Chromaticity and RGB color histograms
    features       Baseline block, texture, embedding and composite features
    distances      Distance metrics
    engine         RetrievalEngine and SearchSession
    embeddings     Precomputed embedding table
    preprocessing  Pixel source helpers (BGR uint8 arrays)
    index_builder  Directory loading and stored feature indexes
    cli            Command-line entry point
"""

__version__ = "1.0.0"
