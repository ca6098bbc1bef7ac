"""
DAG для обновления снапшотов GA4 дашборда (LLM-трафик).

Этот DAG выполняет следующие шаги:
1. Запрос отчетов GA4 для всех представлений дашборда за 7 и 30 дней
2. Трансформация и проверка согласованности данных
3. Сохранение снапшотов в БД

DAG запускается ежедневно в 5:00 утра.
"""

from datetime import datetime, timedelta
from airflow import DAG
from airflow.operators.python import PythonOperator

import sys
import os

# Добавляем путь к проекту в sys.path для корректного импорта
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ga4_analytics.dashboard_service import refresh_dashboard_snapshots_task

# Параметры по умолчанию для задач
default_args = {
    'owner': 'analytics-team',
    'depends_on_past': False,
    'start_date': datetime(2025, 1, 1),
    'email_on_failure': True,
    'email_on_retry': False,
    'retries': 2,
    'retry_delay': timedelta(minutes=10),
    'email': ['analytics-alerts@example.com'],
    'execution_timeout': timedelta(minutes=30),
}

dag = DAG(
    'ga4_dashboard_pipeline',
    default_args=default_args,
    description='Обновление снапшотов GA4 дашборда по LLM-трафику',
    schedule_interval='0 5 * * *',  # Каждый день в 5:00
    catchup=False,
    tags=['ga4', 'llm', 'dashboard'],
    doc_md="""
    # GA4 Dashboard Pipeline

    Refreshes the cached dashboard views:

    * platform split and LLM platforms (with comparison period)
    * geo and devices
    * landing pages with Session Quality Score
    * daily trend

    A warning is logged when the LLM session totals of the views diverge.
    """
)

refresh_snapshots = PythonOperator(
    task_id='refresh_dashboard_snapshots',
    python_callable=refresh_dashboard_snapshots_task,
    op_kwargs={'execution_date': '{{ ds }}'},
    dag=dag,
    doc_md="""
    ### Обновление снапшотов
    Для окон 7 и 30 дней, заканчивающихся датой запуска:
    - запрашивает отчеты GA4
    - агрегирует и валидирует данные
    - сохраняет результат в таблицу ga4_data_snapshots
    """
)
