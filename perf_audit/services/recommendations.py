"""Advisory messages derived from bundle sizes and performance metrics."""

from typing import Optional, Sequence

from perf_audit.schemas.bundle import BundleInfo
from perf_audit.schemas.metrics import PerformanceMetrics

LARGE_BUNDLE_THRESHOLD = 150 * 1024
SMALL_CHUNK_THRESHOLD = 10 * 1024
MIN_SMALL_CHUNKS_FOR_RECOMMENDATION = 3


def bundle_recommendations(bundles: Sequence[BundleInfo]) -> list[str]:
    recommendations: list[str] = []

    large = [b.name for b in bundles if b.size > LARGE_BUNDLE_THRESHOLD]
    if large:
        recommendations.append(
            f"Consider code splitting for large bundles: {', '.join(large)}"
        )

    small_chunks = [
        b for b in bundles if "chunk" in b.name.lower() and b.size < SMALL_CHUNK_THRESHOLD
    ]
    if len(small_chunks) > MIN_SMALL_CHUNKS_FOR_RECOMMENDATION:
        recommendations.append("Consider merging small chunks to reduce HTTP requests")

    return recommendations


def metric_recommendations(metrics: Optional[PerformanceMetrics]) -> list[str]:
    if metrics is None:
        return []

    checks = [
        (metrics.performance is not None and metrics.performance < 90,
         "Consider optimizing images and reducing JavaScript bundle size"),
        (metrics.fcp is not None and metrics.fcp > 2000,
         "Improve First Contentful Paint by optimizing critical rendering path"),
        (metrics.lcp is not None and metrics.lcp > 2500,
         "Reduce Largest Contentful Paint by optimizing images and server response times"),
        (metrics.cls is not None and metrics.cls > 0.1,
         "Fix layout shifts by setting image dimensions and avoiding dynamic content"),
        (metrics.tti is not None and metrics.tti > 3500,
         "Reduce Time to Interactive by minimizing JavaScript execution time"),
        (metrics.accessibility is not None and metrics.accessibility < 95,
         "Improve accessibility by adding alt text, proper headings, and ARIA labels"),
        (metrics.seo is not None and metrics.seo < 90,
         "Improve SEO by adding meta descriptions, proper heading structure, and structured data"),
    ]
    return [message for triggered, message in checks if triggered]


def generate_recommendations(
    bundles: Sequence[BundleInfo], metrics: Optional[PerformanceMetrics] = None
) -> list[str]:
    return bundle_recommendations(bundles) + metric_recommendations(metrics)
