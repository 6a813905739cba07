"""
Kernel services -- the imperative shell around the article log.

Import concrete services from their modules; this package stays empty so
that ``production_kernel.models`` can import ``SequenceCounter`` without a
cycle.
"""
