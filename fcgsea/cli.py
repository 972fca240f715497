"""
Command line interface for fcgsea.

    fcgsea run results/DE.csv --results-dir results --config analysis.yaml
    fcgsea clear-cache
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import AnalysisConfig
from .errors import RankedListError
from .gsea import P_ADJUST_METHODS
from .pipeline import GSEAPipeline
from .sources import GeneSetSourceManager


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fcgsea',
        description="GO and KEGG GSEA on a fold-change table"
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    sub = parser.add_subparsers(dest='command', required=True)

    run = sub.add_parser('run', parents=[common], help="Run the full analysis")
    run.add_argument('input_path', help="Delimited table: gene symbol column, then log2fc")
    run.add_argument('--results-dir', dest='results_dir', help="Output directory (default: results)")
    run.add_argument('--config', help="YAML configuration file")
    run.add_argument('--env-file', dest='env_file', help=".env file with FCGSEA_* settings")
    run.add_argument('--organism', help="human, mouse, rat, fly (or alias)")
    run.add_argument('--label', help="Suffix for output file names")
    run.add_argument('--title', help="Dot plot title")
    run.add_argument('--score-column', dest='score_column', help="Score column name (default: log2fc)")
    run.add_argument('--ontology', dest='go_ontology', choices=['BP', 'MF', 'CC', 'ALL'])
    run.add_argument('--permutations', dest='permutation_num', type=int)
    run.add_argument('--p-adjust', dest='p_adjust_method', choices=list(P_ADJUST_METHODS))
    run.add_argument('--cutoff', dest='p_value_cutoff', type=float, help="Adjusted p-value cutoff")
    run.add_argument('--seed', type=int)
    run.add_argument('--threads', type=int)
    run.add_argument('--pathway', dest='pathway_ids', action='append',
                     help="KEGG pathway to draw (repeatable, e.g. 04130)")
    run.add_argument('--no-plots', dest='make_plots', action='store_false', default=None)
    run.add_argument('--no-literature', dest='literature_trend', action='store_false', default=None)
    run.add_argument('--no-pathview', dest='pathview', action='store_false', default=None)

    clear = sub.add_parser('clear-cache', parents=[common], help="Remove cached gene set libraries")
    clear.add_argument('--cache-dir', dest='cache_dir', help="Cache root (default: ~/.fcgsea/cache)")

    return parser


def _run(args) -> int:
    overrides = {
        name: getattr(args, name)
        for name in (
            'input_path', 'results_dir', 'organism', 'label', 'title', 'score_column',
            'go_ontology', 'permutation_num', 'p_adjust_method', 'p_value_cutoff',
            'seed', 'threads', 'pathway_ids', 'make_plots', 'literature_trend',
        )
    }
    if args.pathview is False:
        overrides['pathway_native'] = False
        overrides['pathway_graph'] = False

    config = AnalysisConfig.load(args.config, env_file=args.env_file, **overrides)
    summary = GSEAPipeline(config).run()

    print(json.dumps({
        'status': summary['status'],
        'runs': summary['runs'],
        'outputs': summary['outputs'],
        'warnings': summary['warnings'],
    }, indent=2))
    return 0


def _clear_cache(args) -> int:
    root = AnalysisConfig(cache_dir=args.cache_dir).resolved_cache_dir
    GeneSetSourceManager(cache_dir=root / 'genesets').clear_cache()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == 'clear-cache':
            return _clear_cache(args)
        return _run(args)
    except (RankedListError, FileNotFoundError) as e:
        logging.error(f"Input error: {e}")
        return 2
    except ValueError as e:
        logging.error(f"Configuration error: {e}")
        return 2
    except RuntimeError as e:
        logging.error(f"Analysis failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
