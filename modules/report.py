# modules/report.py

from modules.pmz_engine import PmzResult


def _gap_label(gap: bool) -> str:
    return "Gap Up" if gap else "Gap Down"


def format_report(result: PmzResult) -> str:
    """
    Plain-text PMZ report: date, the four inputs, then the zone.
    """
    lines = [
        "=" * 50,
        "  PMZ — PRE-MARKET ZONE",
        "=" * 50,
        f"  {'Date':<22}: {result.date.strftime('%Y-%m-%d')}",
        f"  {'PMH':<22}: {result.pmh:.2f}",
        f"  {'PML':<22}: {result.pml:.2f}",
        f"  {'Gap Direction':<22}: {_gap_label(result.gap)}",
        f"  {'Prev Day LIS':<22}: {result.lis:.2f}",
    ]

    if result.open_price is not None:
        lines.append(f"  {'Curr Day Open':<22}: {result.open_price:.2f}")

    lines += [
        "-" * 50,
        f"  {'PMZ High':<22}: {result.pmz_high:.2f}",
        f"  {'PMZ Low':<22}: {result.pmz_low:.2f}",
        f"  {'Risk':<22}: {result.risk:.2f}",
        "-" * 50,
        f"  {'Risk Range (PMH-PML)':<22}: {result.risk_range:.2f}",
        f"  {'Upper Risk':<22}: {result.upper_risk:.2f}",
        f"  {'Lower Risk':<22}: {result.lower_risk:.2f}",
    ]

    ah = result.after_hours
    if ah is not None:
        lines += [
            "-" * 50,
            f"  {'AH High':<22}: {ah.ahh:.2f}",
            f"  {'AH Low':<22}: {ah.ahl:.2f}",
            f"  {'AH Gap Direction':<22}: {_gap_label(ah.ah_set)}",
            f"  {'AH Zone High':<22}: {ah.zone_high:.2f}",
            f"  {'AH Zone Low':<22}: {ah.zone_low:.2f}",
            f"  {'AH Risk':<22}: {ah.risk:.2f}",
        ]

    lines.append("=" * 50)
    return "\n".join(lines)


def print_report(result: PmzResult) -> None:
    print("\n" + format_report(result) + "\n")
