"""
GSEA Analysis Pipeline for fcgsea

Main orchestrator that ties together all analysis components.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import AnalysisConfig
from .gsea import GSEAOptions, GSEARun, run_gsea_prerank
from .id_mapper import GeneIdMapper, MappingReport
from .kegg_client import KEGGClient
from .literature import EuropePMCClient, plot_trend, pmc_trend
from .loader import load_gene_records
from .pathway import PathviewRenderer
from .plots import (
    category_network_plot,
    dot_plot,
    enrichment_map_plot,
    ridge_plot,
    running_score_plot,
)
from .ranking import (
    DuplicatePolicy,
    RankedSeries,
    build_primary_ranked_series,
    build_secondary_ranked_series,
)
from .repro import ReproducibilityLogger
from .sources import GeneSetCollection, GeneSetSourceManager

TOTAL_STEPS = 8


class GSEAPipeline:
    """
    Complete fold-change GSEA pipeline.

    Orchestrates:
    1. Loading the fold-change table
    2. GO gene set enrichment on the symbol-keyed ranking
    3. Identifier mapping to the KEGG key type
    4. KEGG pathway enrichment on the mapped ranking
    5. Pathway diagrams and reproducibility logging
    """

    def __init__(
        self,
        config: AnalysisConfig,
        id_mapper: Optional[GeneIdMapper] = None,
        source_manager: Optional[GeneSetSourceManager] = None,
        renderer: Optional[PathviewRenderer] = None,
        literature_client: Optional[EuropePMCClient] = None
    ):
        self.config = config
        cache_dir = config.resolved_cache_dir
        kegg_client = KEGGClient(cache_dir=cache_dir / 'kegg')

        self.id_mapper = id_mapper or GeneIdMapper(cache_dir=cache_dir / 'id_mapping')
        self.source_manager = source_manager or GeneSetSourceManager(
            cache_dir=cache_dir / 'genesets', kegg_client=kegg_client
        )
        self.renderer = renderer or PathviewRenderer(
            client=kegg_client, limit=config.pathway_limit, node_sum=config.pathway_node_sum
        )
        self.literature_client = literature_client
        self.repro_logger = ReproducibilityLogger()

        self.mapping_report: Optional[MappingReport] = None
        self.warnings: List[str] = []
        self.outputs: Dict[str, str] = {}

    @property
    def results_dir(self) -> Path:
        return self.config.results_dir

    def _step(self, index: int, message: str):
        logging.info(f"Step {index}/{TOTAL_STEPS}: {message}")

    def _warn(self, message: str):
        self.warnings.append(message)
        self.repro_logger.add_warning(message)

    def _record(self, key: str, path: Optional[Path]):
        if path is not None:
            self.outputs[key] = str(path)

    def _options(self) -> GSEAOptions:
        c = self.config
        return GSEAOptions(
            gene_set_ontology=c.go_ontology,
            min_set_size=c.min_set_size,
            max_set_size=c.max_set_size,
            p_value_cutoff=c.p_value_cutoff,
            p_adjust_method=c.p_adjust_method,
            permutation_num=c.permutation_num,
            seed=c.seed,
            threads=c.threads,
        )

    def _go_collection(self) -> GeneSetCollection:
        if self.config.go_gmt:
            return self.source_manager.load_custom_gmt(self.config.go_gmt, source='GO', namespace='SYMBOL')
        return self.source_manager.load_go(self.config.go_ontology, self.config.species)

    def _kegg_collection(self) -> GeneSetCollection:
        if self.config.kegg_gmt:
            return self.source_manager.load_custom_gmt(
                self.config.kegg_gmt, source='KEGG', namespace=self.config.target_key_type
            )
        return self.source_manager.load_kegg(self.config.kegg_code, self.config.kegg_gene_key)

    def _enrich(self, database: str, series: RankedSeries, collection: GeneSetCollection) -> GSEARun:
        self.repro_logger.set_gene_set_info(
            database, collection.source, collection.version, collection.gene_sets
        )
        run = run_gsea_prerank(series, collection, self._options(), database=database)
        for message in run.warnings:
            self._warn(message)

        csv_name = f"gsea_{database.lower()}_results_{self.config.label}.csv"
        self._record(f"{database.lower()}_csv", run.save_csv(self.results_dir / csv_name))
        return run

    def _plot(self, run: GSEARun, series: RankedSeries, prefix: str):
        """Dot plot, enrichment map, category network, ridge and running-score plots"""
        c = self.config
        label = c.label
        out = self.results_dir
        key = run.database.lower()

        self._record(f"{key}_dotplot", dot_plot(
            run, out / f"GSEA{prefix}dotplot_{label}.png",
            title=c.title or f"{run.database} GSEA {label}",
            show_category=c.show_category, colors=c.dot_colors, dpi=c.dpi
        ))
        self._record(f"{key}_emap", enrichment_map_plot(
            run, out / f"GSEA{prefix}emapplot_{label}.png",
            show_category=c.show_category, dpi=c.dpi
        ))
        self._record(f"{key}_cnet", category_network_plot(
            run, series, out / f"GSEA{prefix}cnetplot_{label}.png", dpi=c.dpi
        ))
        self._record(f"{key}_ridge", ridge_plot(
            run, series, out / f"GSEA{prefix}ridgeplot_{label}.png",
            show_category=c.show_category, dpi=c.dpi
        ))
        self._record(f"{key}_gseaplot", running_score_plot(
            run, out / f"GSEA{prefix}gseaplot_{label}.png"
        ))

    def _literature(self, run: GSEARun):
        c = self.config
        terms = [r.description for r in run.top(c.literature_terms)]
        if not terms:
            return
        years = range(c.literature_years[0], c.literature_years[1] + 1)
        client = self.literature_client or EuropePMCClient(cache_dir=c.resolved_cache_dir / 'literature')
        try:
            trend = pmc_trend(terms, years, proportion=c.literature_proportion, client=client)
        except RuntimeError as e:
            self._warn(f"PubMed trend skipped: {e}")
            return
        self._record('pubmed_trend', plot_trend(
            trend, self.results_dir / f"PubMedTrend_{c.label}.png",
            proportion=c.literature_proportion, dpi=c.dpi
        ))

    def _pathways(self, series: RankedSeries):
        c = self.config
        out = self.results_dir / 'pathview'
        for pathway_id in c.pathway_ids:
            styles = [s for s, on in ((True, c.pathway_native), (False, c.pathway_graph)) if on]
            for native in styles:
                try:
                    path = self.renderer.render(series, pathway_id, c.kegg_code, out, kegg_native=native)
                except RuntimeError as e:
                    self._warn(f"Pathway diagram {pathway_id} skipped: {e}")
                    continue
                self._record(f"pathview_{path.name}", path)

    def run(self) -> Dict[str, Any]:
        """
        Run the complete analysis described by the configuration.

        Returns:
            Dictionary with status, per-database result counts, output paths,
            mapping_report, metadata and warnings
        """
        c = self.config
        if c.input_path is None:
            raise ValueError("No input file configured")
        score_policy = DuplicatePolicy.parse(c.score_duplicate_policy)
        mapping_policy = DuplicatePolicy.parse(c.mapping_duplicate_policy)

        self.repro_logger.set_parameters(**c.to_dict())

        # Step 1: Input
        self._step(1, f"Loading fold changes from {c.input_path}")
        records = load_gene_records(c.input_path, score_column=c.score_column, sep=c.separator)
        scored = sum(1 for r in records if r.has_score)

        # Step 2: Primary ranking
        self._step(2, "Building symbol-keyed ranking")
        primary = build_primary_ranked_series(records, policy=score_policy)
        self.repro_logger.set_input_summary(
            total_records=len(records),
            scored_records=scored,
            ranked_symbols=len(primary),
            species=c.species.species_key,
            score_column=c.score_column,
        )

        # Step 3: Identifier mapping
        self._step(3, f"Mapping {c.key_type} -> {c.target_key_type}")
        mapping, self.mapping_report = self.id_mapper.map_genes(
            list(dict.fromkeys(r.gene_symbol for r in records)),
            from_type=c.key_type,
            to_type=c.target_key_type,
            species=c.species,
            policy=mapping_policy
        )
        self.repro_logger.set_mapping_report(self.mapping_report.to_dict())
        if self.mapping_report.unmapped_count:
            self._warn(
                f"Failed to map {self.mapping_report.unmapped_count}/{self.mapping_report.input_count} "
                f"genes. First few: {', '.join(self.mapping_report.unmapped_ids[:5])}"
            )

        # Step 4: Secondary ranking
        self._step(4, f"Building {c.target_key_type}-keyed ranking and loading gene sets")
        secondary = build_secondary_ranked_series(records, mapping, policy=score_policy)

        go_sets = self._go_collection()
        kegg_sets = self._kegg_collection()

        # No output is written until both rankings and both gene set collections exist
        self.results_dir.mkdir(parents=True, exist_ok=True)

        # Step 5: GO enrichment + plots
        self._step(5, f"GO ({c.go_ontology}) gene set enrichment")
        go_run = self._enrich('GO', primary, go_sets)
        if c.make_plots:
            self._plot(go_run, primary, '')
        if c.literature_trend:
            self._literature(go_run)

        # Step 6: KEGG enrichment
        self._step(6, f"KEGG ({c.kegg_code}) pathway enrichment")
        kegg_run = self._enrich('KEGG', secondary, kegg_sets)

        # Step 7: KEGG plots + pathway diagrams
        self._step(7, "KEGG plots and pathway diagrams")
        if c.make_plots:
            self._plot(kegg_run, secondary, 'KEGG')
        if c.pathway_native or c.pathway_graph:
            self._pathways(secondary)

        # Step 8: Metadata
        self._step(8, "Saving metadata")
        runs = {run.database: run for run in (go_run, kegg_run)}
        for name, run in runs.items():
            key = name.lower()
            self.repro_logger.set_output_summary(**{
                f"{key}_tested": run.tested,
                f"{key}_significant": len(run),
                f"{key}_top_term": run.results[0].description if run.results else None,
            })
        metadata_json = self.results_dir / f"metadata_{c.label}.json"
        metadata_yaml = self.results_dir / f"metadata_{c.label}.yaml"
        self.repro_logger.export_json(metadata_json)
        self.repro_logger.export_yaml(metadata_yaml)
        self._record('metadata_json', metadata_json)
        self._record('metadata_yaml', metadata_yaml)

        return {
            'status': 'ok',
            'runs': {
                name: {'tested': run.tested, 'significant': len(run), 'namespace': run.namespace}
                for name, run in runs.items()
            },
            'series': {'primary': len(primary), 'secondary': len(secondary)},
            'outputs': dict(self.outputs),
            'metadata': self.repro_logger.get_metadata().to_dict(),
            'mapping_report': self.mapping_report.to_dict(),
            'warnings': list(self.warnings),
        }
