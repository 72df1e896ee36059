from .crunchyconfig import (
    Config as Config,
)
from .crunchyconfig import (
    FieldSelectors as FieldSelectors,
)
from .crunchyconfig import (
    ScrollConfig as ScrollConfig,
)
from .crunchyconfig import (
    SelectorCandidate as SelectorCandidate,
)
from .crunchyconfig import (
    SelectorSet as SelectorSet,
)
from .crunchyconfig import (
    SessionConfig as SessionConfig,
)
from .crunchyconfig import (
    coerce_nested as coerce_nested,
)
from .crunchyconfig import (
    load_config as load_config,
)
from .crunchyextract import (
    CardLocator as CardLocator,
)
from .crunchyextract import (
    DedupAccumulator as DedupAccumulator,
)
from .crunchyextract import (
    FieldExtractor as FieldExtractor,
)
from .crunchyextract import (
    HistoryRecord as HistoryRecord,
)
from .crunchyextract import (
    SelectorResolver as SelectorResolver,
)
from .crunchyreport import (
    default_output_path as default_output_path,
)
from .crunchyreport import (
    format_log_line as format_log_line,
)
from .crunchyreport import (
    records_to_dataframe as records_to_dataframe,
)
from .crunchyreport import (
    render_report as render_report,
)
from .crunchyreport import (
    write_report as write_report,
)
from .crunchyscraper import (
    HistoryCollector as HistoryCollector,
)
from .crunchyscraper import (
    HistoryScraper as HistoryScraper,
)
from .crunchyscraper import (
    InfiniteScrollPaginator as InfiniteScrollPaginator,
)
from .crunchysession import (
    Credentials as Credentials,
)
from .crunchysession import (
    DrivenSession as DrivenSession,
)
from .crunchysession import (
    ManualSession as ManualSession,
)
from .crunchysession import (
    SessionNotReadyError as SessionNotReadyError,
)
from .crunchysession import (
    SessionState as SessionState,
)
from .crunchysession import (
    wait_until as wait_until,
)
