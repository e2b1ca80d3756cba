"""
成绩数据服务客户端（json-server 风格的 REST 接口）
"""

import time
from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models import ScoreRecord
from reconciler import ReconcileSummary

DEFAULT_API_URL = "http://localhost:3001"


class PersistError(RuntimeError):
    """写回过程中途失败；written 为失败前已成功写入的记录"""

    def __init__(self, message: str, written: List[ScoreRecord]):
        super().__init__(message)
        self.written = written


class GradeStore(requests.Session):
    """成绩数据服务 - 负责成绩记录的读取与写回"""

    endpoint = "/grades"

    def __init__(self, base_url: str = DEFAULT_API_URL,
                 request_timeout: tuple[float, float] = (5.0, 10.0),
                 debug_http: bool = False,
                 max_retries: int = 3,
                 backoff_factor: float = 0.6):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.debug_http = debug_http
        self.max_retries = int(max_retries)
        self.backoff_factor = float(backoff_factor)

        # 连接池级别的重试：只重试幂等方法（PATCH 提交整条记录），POST 不重试
        retry = Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=self.max_retries,
            status=self.max_retries,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=("HEAD", "GET", "PUT", "PATCH", "DELETE", "OPTIONS"),
            backoff_factor=self.backoff_factor,
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
        self.mount("https://", adapter)
        self.mount("http://", adapter)

        self.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _url(self, path: str = "") -> str:
        return f"{self.base_url}{self.endpoint}{path}"

    def _request_with_default_timeout(self, method: str, url: str, **kwargs) -> requests.Response:
        """统一加默认 timeout 并检查状态码，debug 模式下打印每个请求"""
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.request_timeout

        start = time.monotonic()
        try:
            res = self.request(method, url, **kwargs)
            res.raise_for_status()
            if self.debug_http:
                cost_ms = int((time.monotonic() - start) * 1000)
                print(f"{'[HTTP]':<15}: {method} {res.url} -> {res.status_code} ({cost_ms}ms)")
            return res
        except requests.exceptions.Timeout:
            cost_ms = int((time.monotonic() - start) * 1000)
            print(f"{'[HTTP]':<15}: {method} {url} 超时（{cost_ms}ms），timeout={kwargs.get('timeout')}")
            raise
        except requests.exceptions.RequestException as e:
            cost_ms = int((time.monotonic() - start) * 1000)
            print(f"{'[HTTP]':<15}: {method} {url} 请求失败（{cost_ms}ms）: {e}")
            raise

    def _get_records(self, params: Optional[dict] = None) -> List[ScoreRecord]:
        res = self._request_with_default_timeout("GET", self._url(), params=params)
        return [ScoreRecord.from_dict(item) for item in res.json()]

    def get_all(self) -> List[ScoreRecord]:
        return self._get_records()

    def get_by_id(self, record_id: int) -> ScoreRecord:
        res = self._request_with_default_timeout("GET", self._url(f"/{record_id}"))
        return ScoreRecord.from_dict(res.json())

    def get_by_student(self, student_id: int) -> List[ScoreRecord]:
        return self._get_records({"studentId": student_id})

    def get_by_course(self, course_id: int) -> List[ScoreRecord]:
        return self._get_records({"courseId": course_id})

    def get_by_student_and_course(self, student_id: int, course_id: int) -> Optional[ScoreRecord]:
        records = self._get_records({"studentId": student_id, "courseId": course_id})
        return records[0] if records else None

    def top_performers_by_course(self, course_id: int, limit: int = 5) -> List[ScoreRecord]:
        """某门课程分数最高的若干条记录"""
        return self._get_records({
            "courseId": course_id,
            "_sort": "score",
            "_order": "desc",
            "_limit": limit,
        })

    def create(self, record: ScoreRecord) -> ScoreRecord:
        payload = record.to_dict()
        payload.pop("id", None)
        res = self._request_with_default_timeout("POST", self._url(), json=payload)
        return ScoreRecord.from_dict(res.json())

    def update(self, record: ScoreRecord) -> ScoreRecord:
        """PATCH 已有记录；记录必须带有数据服务分配的 id"""
        if record.id is None:
            raise ValueError(f"记录 {record.get_unique_key()} 没有 id，无法更新")
        payload = record.to_dict()
        payload.pop("id")
        res = self._request_with_default_timeout("PATCH", self._url(f"/{record.id}"), json=payload)
        return ScoreRecord.from_dict(res.json())

    def delete(self, record_id: int) -> None:
        self._request_with_default_timeout("DELETE", self._url(f"/{record_id}"))

    def persist(self, summary: ReconcileSummary) -> List[ScoreRecord]:
        """
        把合并结果写回数据服务：更新的记录逐条 PATCH，新增的记录逐条 POST

        Returns:
            List[ScoreRecord]: 数据服务返回的记录（新增记录带有分配的 id）

        Raises:
            PersistError: 中途写入失败，已写入的记录不会回滚
        """
        written: List[ScoreRecord] = []
        try:
            for record in summary.updated:
                written.append(self.update(record))
            for record in summary.created:
                written.append(self.create(record))
        except requests.exceptions.RequestException as e:
            total = summary.total_changes
            raise PersistError(f"写回成绩失败（已写入 {len(written)}/{total} 条）: {e}", written) from e
        return written
