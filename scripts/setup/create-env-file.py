#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""로컬 개발용 .env 템플릿 생성"""
import os
from pathlib import Path

# 프로젝트 루트
project_root = Path(__file__).parent.parent.parent
env_file = project_root / ".env"

# 주의: 실제 DB 계정 정보는 별도로 받아서 수동으로 입력해야 함
env_content = """# Database
DATABASE_URL=postgresql+asyncpg://<DB_USER>:<DB_PASSWORD>@localhost:5432/timed_quiz_db
DB_ECHO=false

# CORS
ALLOWED_ORIGINS=http://localhost:3000,http://localhost:5173

# Environment
# 로컬 개발 시 development로 두면 상세 에러 메시지 확인 가능
ENVIRONMENT=development
PORT=8001

# 시간대 (알 수 없는 시간대 입력 시 대체값)
DEFAULT_TIMEZONE=Asia/Kolkata

# 스케줄링
MIN_SCHEDULE_LEAD_MINUTES=5
ENROLLMENT_VISIBILITY_HOURS=24

# 응시 정리 작업
SWEEP_TIMEOUT_MULTIPLIER=2.0
SWEEP_ABANDON_MULTIPLIER=1.5
SWEEP_ABSOLUTE_CEILING_MINUTES=240
ANSWER_RETENTION_DAYS=7
# 0이면 앱 내부 주기 실행 비활성화 (cron으로 scripts/maintenance/run-reconciliation.py 실행)
SWEEP_INTERVAL_MINUTES=0
"""


def create_env_file():
    """.env 파일 생성 (UTF-8, BOM 없음)"""
    print(f"[INFO] .env 파일 생성 중: {env_file}")

    # 기존 파일이 있으면 백업
    if env_file.exists():
        backup_file = project_root / ".env.backup"
        print(f"[INFO] 기존 .env 파일 백업: {backup_file}")
        with open(env_file, 'r', encoding='utf-8') as f:
            backup_content = f.read()
        with open(backup_file, 'w', encoding='utf-8', newline='\n') as f:
            f.write(backup_content)

    # .env 파일 생성 (UTF-8, BOM 없음, LF 줄바꿈)
    with open(env_file, 'w', encoding='utf-8', newline='\n') as f:
        f.write(env_content)

    print(f"[OK] .env 파일 생성 완료")
    print(f"[INFO] 파일 위치: {env_file}")

    # Windows에서는 chmod 스킵
    if os.name != 'nt':
        os.chmod(env_file, 0o600)
        print(f"[INFO] 파일 권한 설정: 600")


if __name__ == "__main__":
    try:
        create_env_file()
        print("\n[OK] 작업 완료")
    except Exception as e:
        print(f"\n[ERROR] 에러 발생: {e.__class__.__name__}: {str(e)}")
        import traceback
        traceback.print_exc()
        exit(1)
